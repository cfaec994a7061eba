"""HMAC verification of provider webhook signatures."""

import hashlib
import hmac
import logging
from typing import Optional

from .config import get_webhook_secret

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-paystack-signature"


class SignatureVerifier:
    """Checks that a webhook body was signed with the shared provider secret.

    The digest must be computed over the raw request bytes exactly as
    received. Parsing and re-serializing the JSON would not reproduce them.
    """

    def __init__(self, secret: Optional[str] = None, digestmod=hashlib.sha512):
        self.secret = secret
        self.digestmod = digestmod

    @classmethod
    def from_env(cls) -> "SignatureVerifier":
        return cls(secret=get_webhook_secret())

    def sign(self, raw_body: bytes) -> str:
        """Hex digest the provider would send for this body."""
        if not self.secret:
            raise ValueError("Cannot sign without a webhook secret")
        return hmac.new(self.secret.encode("utf-8"), raw_body, self.digestmod).hexdigest()

    def verify(self, raw_body: bytes, signature_header: Optional[str]) -> bool:
        """Return True only if the header matches the body's HMAC.

        Never raises: a missing secret, missing header or mismatch all
        return False.
        """
        if not self.secret:
            logger.error("PAYSTACK_SECRET_KEY is not configured; rejecting webhook")
            return False
        if not signature_header:
            return False
        expected = self.sign(raw_body)
        # Compare as bytes; compare_digest rejects non-ASCII str input
        return hmac.compare_digest(
            expected.encode("ascii"),
            signature_header.strip().lower().encode("utf-8"),
        )
