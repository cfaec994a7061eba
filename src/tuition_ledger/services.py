"""Ledger service: idempotent recording of provider charges."""

import logging
from typing import Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .database import (
    Transaction,
    PaymentStatus,
    TransactionStatus,
    InstallmentKind,
    StudentRepository,
    TransactionRepository,
)
from .exceptions import (
    InvariantViolation,
    TransientPersistenceFailure,
    UnknownStudent,
)
from .pricing import PricingTable
from .status import StatusResolver, derive_status

logger = logging.getLogger(__name__)


class RecordResult(BaseModel):
    """Outcome of a ledger insertion.

    ``accepted`` is False when the reference was already in the ledger; that
    is the normal result of a repeated webhook delivery, not an error.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    accepted: bool
    transaction: Optional[Transaction] = None
    payment_status: Optional[PaymentStatus] = None
    previous_status: Optional[PaymentStatus] = None

    @property
    def became_fully_paid(self) -> bool:
        return (
            self.accepted
            and self.payment_status == PaymentStatus.FULLY_PAID
            and self.previous_status != PaymentStatus.FULLY_PAID
        )


class LedgerService:
    """Appends provider charges to the ledger.

    The caller owns the unit of work: this service flushes but never commits.
    On a duplicate reference the session is rolled back, so callers should
    not stage unrelated writes in the same session before recording.
    """

    def __init__(self, session: AsyncSession, pricing: Optional[PricingTable] = None):
        """Initialize the service with a database session.

        Args:
            session: AsyncSession instance for database operations.
            pricing: Pricing table used for status recomputation.
        """
        self.session = session
        self.student_repo = StudentRepository(session)
        self.transaction_repo = TransactionRepository(session)
        self.resolver = StatusResolver(session, pricing)

    async def record_success(
        self,
        student_id: str,
        amount: int,
        reference: str,
    ) -> RecordResult:
        """Record a successful charge exactly once per provider reference.

        The unique constraint on ``reference`` decides concurrent duplicates;
        there is no read-before-write check. The installment kind is decided
        after the insert so that, with the row lock (PostgreSQL) or the write
        lock (SQLite) held, two different payments for one student are
        classified in commit order.

        Args:
            student_id: Paying student.
            amount: Amount in whole currency units, must be positive.
            reference: Provider reference (idempotency key).

        Returns:
            RecordResult with the new transaction and recomputed status, or
            ``accepted=False`` when the reference was already recorded.

        Raises:
            InvariantViolation: If amount is not positive.
            UnknownStudent: If the student does not exist.
            TransientPersistenceFailure: On any other storage error.
        """
        if amount <= 0:
            logger.error(
                f"Refusing to record non-positive amount {amount} for reference {reference}"
            )
            raise InvariantViolation(f"Payment amount must be positive, got {amount}")

        try:
            student = await self.student_repo.get_for_update(student_id)
            if student is None:
                raise UnknownStudent(student_id)

            try:
                transaction = await self.transaction_repo.create(
                    student_id=student_id,
                    amount=amount,
                    kind=InstallmentKind.INITIAL.value,
                    reference=reference,
                    status=TransactionStatus.SUCCESS.value,
                )
            except IntegrityError:
                await self.session.rollback()
                logger.info(f"Reference {reference} already recorded; skipping")
                return RecordResult(accepted=False)

            prior_paid = await self.transaction_repo.sum_success(
                student_id, exclude_id=transaction.id
            )
            if prior_paid > 0:
                transaction.kind = InstallmentKind.BALANCE.value
                await self.session.flush()
            # From the ledger; the cached column can lag a concurrent delivery
            previous_status = derive_status(
                prior_paid, self.resolver.pricing.tuition_for(student.duration)
            )

            new_status = await self.resolver.recompute(student_id)
        except SQLAlchemyError as e:
            logger.error(f"Persistence failure recording reference {reference}: {e}")
            raise TransientPersistenceFailure(str(e)) from e

        logger.info(
            f"Recorded {transaction.kind} payment {reference} of {amount} for student "
            f"{student_id}; status {previous_status.value} -> {new_status.value}"
        )
        return RecordResult(
            accepted=True,
            transaction=transaction,
            payment_status=new_status,
            previous_status=previous_status,
        )

    async def record_failure(
        self,
        student_id: str,
        amount: int,
        reference: str,
    ) -> RecordResult:
        """Record a failed charge for the audit trail.

        Failed charges never count toward the paid total, so the student's
        status is left alone.

        Raises:
            InvariantViolation: If amount is negative.
            TransientPersistenceFailure: On any storage error other than a
                duplicate reference.
        """
        if amount < 0:
            logger.error(
                f"Refusing to record negative amount {amount} for failed reference {reference}"
            )
            raise InvariantViolation(f"Payment amount cannot be negative, got {amount}")

        try:
            prior_paid = await self.transaction_repo.sum_success(student_id)
            kind = InstallmentKind.BALANCE if prior_paid > 0 else InstallmentKind.INITIAL
            try:
                transaction = await self.transaction_repo.create(
                    student_id=student_id,
                    amount=amount,
                    kind=kind.value,
                    reference=reference,
                    status=TransactionStatus.FAILED.value,
                )
            except IntegrityError:
                await self.session.rollback()
                logger.info(f"Reference {reference} already recorded; ignoring failure event")
                return RecordResult(accepted=False)
        except SQLAlchemyError as e:
            logger.error(f"Persistence failure recording failed reference {reference}: {e}")
            raise TransientPersistenceFailure(str(e)) from e

        logger.info(f"Recorded failed charge {reference} for student {student_id}")
        return RecordResult(accepted=True, transaction=transaction)
