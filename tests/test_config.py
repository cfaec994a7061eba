"""Tests for environment-driven settings."""

import os
import pytest
from unittest.mock import patch

from tuition_ledger import config


class TestAppEnv:

    def test_default_is_production(self):
        with patch.dict(os.environ, {}, clear=True):
            assert config.get_app_env() == "production"
            assert config.is_development() is False

    @pytest.mark.parametrize("value", ["development", " Development ", "DEVELOPMENT"])
    def test_development(self, value):
        with patch.dict(os.environ, {"APP_ENV": value}):
            assert config.is_development() is True

    def test_other_environments_verify(self):
        with patch.dict(os.environ, {"APP_ENV": "dev"}):
            assert config.is_development() is False


class TestSettings:

    def test_webhook_secret(self):
        with patch.dict(os.environ, {"PAYSTACK_SECRET_KEY": "sk_live_x"}):
            assert config.get_webhook_secret() == "sk_live_x"
        with patch.dict(os.environ, {}, clear=True):
            assert config.get_webhook_secret() is None

    def test_admin_rate_limit(self):
        with patch.dict(os.environ, {}, clear=True):
            assert config.get_admin_rate_limit() == "60/minute"
        with patch.dict(os.environ, {"ADMIN_RATE_LIMIT": "10/second"}):
            assert config.get_admin_rate_limit() == "10/second"

    @pytest.mark.parametrize("value,expected", [
        ("true", True),
        ("1", True),
        ("false", False),
        ("False", False),
        ("0", False),
        ("no", False),
    ])
    def test_rate_limit_enabled(self, value, expected):
        with patch.dict(os.environ, {"RATE_LIMIT_ENABLED": value}):
            assert config.is_rate_limit_enabled() is expected

    def test_rate_limit_enabled_by_default(self):
        with patch.dict(os.environ, {}, clear=True):
            assert config.is_rate_limit_enabled() is True

    def test_notification_url(self):
        with patch.dict(os.environ, {"NOTIFICATION_WEBHOOK_URL": ""}):
            assert config.get_notification_url() is None

    def test_admin_api_key(self):
        with patch.dict(os.environ, {"API_KEY": "k-123"}):
            assert config.get_admin_api_key() == "k-123"
        with patch.dict(os.environ, {"API_KEY": ""}):
            assert config.get_admin_api_key() is None
