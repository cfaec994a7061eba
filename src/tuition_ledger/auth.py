"""Admin route guards: bearer API key and per-client rate limiting."""

import secrets
import logging

from fastapi import HTTPException, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from slowapi import Limiter
from slowapi.util import get_remote_address

from .config import get_admin_api_key, get_admin_rate_limit, is_rate_limit_enabled

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer()

# Only admin routes are decorated; the provider webhook is never limited
limiter = Limiter(key_func=get_remote_address, enabled=is_rate_limit_enabled())

ADMIN_RATE_LIMIT = get_admin_rate_limit()


def _matches(presented: str, expected: str) -> bool:
    return secrets.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))


async def verify_api_key(credentials: HTTPAuthorizationCredentials = Security(bearer_scheme)) -> str:
    """Dependency guarding the audit and reconciliation routes.

    ``API_KEY`` is read per request. An unset key answers 500, a wrong one 401.
    """
    expected = get_admin_api_key()
    if expected is None:
        logger.error("API_KEY is not set; refusing admin request")
        raise HTTPException(status_code=500, detail="Server configuration error")
    if not _matches(credentials.credentials, expected):
        logger.warning("Admin request with an invalid API key")
        raise HTTPException(status_code=401, detail="Invalid API key")
    return credentials.credentials
