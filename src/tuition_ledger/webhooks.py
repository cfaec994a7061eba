"""Webhook ingestion: verify, parse and dispatch provider charge events."""

import logging
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .config import is_development
from .database import StudentRepository
from .exceptions import (
    InvalidSignature,
    InvariantViolation,
    MalformedPayload,
    TransientPersistenceFailure,
    UnknownPayer,
    UnknownPlan,
)
from .notifications import FULLY_PAID, PAYMENT_RECORDED, PaymentNotification
from .pricing import MINOR_UNITS_PER_MAJOR, PricingTable
from .services import LedgerService, RecordResult
from .signature import SIGNATURE_HEADER, SignatureVerifier

logger = logging.getLogger(__name__)

CHARGE_SUCCESS = "charge.success"
CHARGE_FAILED = "charge.failed"

# Ledger amounts are stored in a 32-bit integer column
MAX_LEDGER_AMOUNT = 2_147_483_647
MAX_AMOUNT_MINOR = (MAX_LEDGER_AMOUNT + 1) * MINOR_UNITS_PER_MAJOR - 1


class WebhookCustomer(BaseModel):
    email: str = Field(..., min_length=3)


class WebhookData(BaseModel):
    reference: str = Field(..., min_length=1)
    amount: int = Field(..., le=MAX_AMOUNT_MINOR, description="Amount in minor units (kobo)")
    customer: WebhookCustomer


class WebhookEvent(BaseModel):
    """Minimal shape of a provider charge event; extra fields are ignored."""
    event: str = Field(..., min_length=1)
    data: WebhookData


class HttpOutcome(BaseModel):
    """HTTP response the webhook route should send, plus deferred notifications."""
    status_code: int = 200
    body: Dict[str, Any] = Field(default_factory=dict)
    notifications: List[PaymentNotification] = Field(default_factory=list)


def parse_event(raw_body: bytes) -> WebhookEvent:
    """Parse and validate a raw webhook body.

    Raises:
        MalformedPayload: If the body is not JSON or lacks a required field.
    """
    try:
        return WebhookEvent.model_validate_json(raw_body)
    except ValidationError as e:
        raise MalformedPayload(str(e)) from e


def to_major_units(amount_minor: int, reference: str) -> int:
    """Convert kobo to whole naira, truncating any fractional remainder."""
    whole, remainder = divmod(amount_minor, MINOR_UNITS_PER_MAJOR)
    if remainder:
        logger.warning(
            f"Reference {reference} amount {amount_minor} is not a whole number of "
            f"currency units; truncating to {whole}"
        )
    return whole


class WebhookPipeline:
    """Turns one webhook delivery into at most one ledger row.

    Each call to ``handle`` is an independent unit of work with its own
    session, so deliveries can be processed concurrently. Duplicate
    deliveries are resolved by the ledger's unique constraint.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        verifier: Optional[SignatureVerifier] = None,
        pricing: Optional[PricingTable] = None,
    ):
        self.session_factory = session_factory
        self.verifier = verifier or SignatureVerifier.from_env()
        self.pricing = pricing

    async def handle(self, raw_body: bytes, headers: Mapping[str, str]) -> HttpOutcome:
        """Process one delivery.

        Args:
            raw_body: Request body exactly as received.
            headers: Request headers (any case).

        Returns:
            HttpOutcome: 200 for processed, duplicate, dropped and ignored
            events; 401 bad signature; 404 unknown payer; 500 retryable failure.
        """
        headers = {k.lower(): v for k, v in headers.items()}

        try:
            self._check_signature(raw_body, headers)
        except InvalidSignature as e:
            logger.warning(f"Rejected webhook: {e}")
            return HttpOutcome(status_code=401, body={"error": "Invalid signature"})

        try:
            event = parse_event(raw_body)
        except MalformedPayload as e:
            # Retrying cannot fix a malformed body, so acknowledge it
            logger.warning(f"Dropping malformed webhook payload: {e}")
            return HttpOutcome(body={"received": True})

        if event.event not in (CHARGE_SUCCESS, CHARGE_FAILED):
            logger.debug(f"Ignoring {event.event} event {event.data.reference}")
            return HttpOutcome(body={"received": True})

        reference = event.data.reference
        amount = to_major_units(event.data.amount, reference)
        email = event.data.customer.email

        try:
            if event.event == CHARGE_FAILED:
                return await self._handle_failed(email, amount, reference)
            return await self._handle_success(email, amount, reference)
        except UnknownPayer as e:
            logger.warning(f"Webhook {reference} for unknown payer: {e}")
            return HttpOutcome(status_code=404, body={"error": "Student not found"})
        except InvariantViolation as e:
            logger.error(f"Webhook {reference} violates a ledger invariant: {e}")
            return HttpOutcome(body={"received": True, "accepted": False, "error": str(e)})
        except UnknownPlan as e:
            logger.error(f"Webhook {reference} cannot be priced: {e}")
            return HttpOutcome(status_code=500, body={"error": "Webhook failed"})
        except (TransientPersistenceFailure, SQLAlchemyError) as e:
            logger.error(f"Webhook {reference} failed to persist: {e}")
            return HttpOutcome(status_code=500, body={"error": "Webhook failed"})

    def _check_signature(self, raw_body: bytes, headers: Mapping[str, str]) -> None:
        if is_development():
            return
        if not self.verifier.verify(raw_body, headers.get(SIGNATURE_HEADER)):
            raise InvalidSignature("missing or invalid signature")

    async def _handle_success(self, email: str, amount: int, reference: str) -> HttpOutcome:
        async with self.session_factory() as session:
            try:
                student = await StudentRepository(session).get_by_email(email)
                if student is None:
                    raise UnknownPayer(email)
                student_id = student.id
                student_email = student.email

                ledger = LedgerService(session, self.pricing)
                result = await ledger.record_success(student_id, amount, reference)
                await session.commit()
            except Exception:
                await session.rollback()
                raise

        if not result.accepted:
            return HttpOutcome(body={"received": True, "message": "Already processed"})

        return HttpOutcome(
            body={
                "received": True,
                "success": True,
                "installment": result.transaction.kind,
                "payment_status": result.payment_status.value,
            },
            notifications=self._notifications_for(result, student_email),
        )

    async def _handle_failed(self, email: str, amount: int, reference: str) -> HttpOutcome:
        async with self.session_factory() as session:
            try:
                student = await StudentRepository(session).get_by_email(email)
                if student is None:
                    raise UnknownPayer(email)

                ledger = LedgerService(session, self.pricing)
                await ledger.record_failure(student.id, amount, reference)
                await session.commit()
            except Exception:
                await session.rollback()
                raise

        return HttpOutcome(body={"received": True})

    @staticmethod
    def _notifications_for(result: RecordResult, email: str) -> List[PaymentNotification]:
        transaction = result.transaction
        base = dict(
            student_id=transaction.student_id,
            email=email,
            reference=transaction.reference,
            amount=transaction.amount,
            installment=transaction.kind,
            payment_status=result.payment_status.value,
        )
        notifications = [PaymentNotification(kind=PAYMENT_RECORDED, **base)]
        if result.became_fully_paid:
            notifications.append(PaymentNotification(kind=FULLY_PAID, **base))
        return notifications
