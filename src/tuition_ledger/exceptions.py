"""Error taxonomy for the payment core.

A repeated provider reference is not an error; it is reported through
``RecordResult.accepted``.
"""

from typing import Optional


class PaymentCoreError(Exception):
    """Base class for payment core errors."""


class InvalidSignature(PaymentCoreError):
    """Webhook signature missing or does not match the raw body."""


class MalformedPayload(PaymentCoreError):
    """Webhook body could not be parsed into the expected event shape."""


class UnknownPayer(PaymentCoreError):
    """No student is registered under the payer email."""

    def __init__(self, email: str):
        super().__init__(f"No student registered with email {email}")
        self.email = email


class UnknownStudent(PaymentCoreError):
    """No student exists with the given ID, or with the given email."""

    def __init__(self, student_id: Optional[str] = None, email: Optional[str] = None):
        if email is not None:
            message = f"No student registered with email {email}"
        else:
            message = f"Student {student_id} not found"
        super().__init__(message)
        self.student_id = student_id
        self.email = email


class TransientPersistenceFailure(PaymentCoreError):
    """Storage failed in a way a retry may fix."""


class InvariantViolation(PaymentCoreError):
    """Input would break a ledger invariant, e.g. a non-positive amount."""


class UnknownPlan(PaymentCoreError):
    """Student plan duration has no entry in the pricing table."""
