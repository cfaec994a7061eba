"""Environment-driven settings."""

import os
from typing import Optional

DEVELOPMENT = "development"


def get_app_env() -> str:
    return os.getenv("APP_ENV", "production").strip().lower()


def is_development() -> bool:
    """True when signature verification should be skipped."""
    return get_app_env() == DEVELOPMENT


def get_webhook_secret() -> Optional[str]:
    """Secret shared with the payment provider for webhook signatures."""
    return os.getenv("PAYSTACK_SECRET_KEY") or None


def get_admin_rate_limit() -> str:
    return os.getenv("ADMIN_RATE_LIMIT", "60/minute")


def is_rate_limit_enabled() -> bool:
    return os.getenv("RATE_LIMIT_ENABLED", "true").strip().lower() not in ("0", "false", "no")


def get_notification_url() -> Optional[str]:
    return os.getenv("NOTIFICATION_WEBHOOK_URL") or None


def get_admin_api_key() -> Optional[str]:
    """Bearer token expected on admin audit and reconciliation routes."""
    return os.getenv("API_KEY") or None
