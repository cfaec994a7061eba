"""Derivation of a student's payment status from the ledger."""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from .database import (
    Student,
    PaymentStatus,
    StudentRepository,
    TransactionRepository,
)
from .exceptions import UnknownStudent
from .pricing import PricingTable, default_pricing

logger = logging.getLogger(__name__)


def derive_status(paid_total: int, tuition: int) -> PaymentStatus:
    """Map a successful-payment total onto a status tier.

    Overpayment still yields fully_paid; there is no tier above it.
    """
    if paid_total <= 0:
        return PaymentStatus.NOT_PAID
    if paid_total >= tuition:
        return PaymentStatus.FULLY_PAID
    return PaymentStatus.PARTIALLY_PAID


class StatusResolver:
    """Recomputes ``Student.payment_status`` by replaying the ledger.

    The stored status is a cache of this computation. Because it is derived
    from the aggregate sum rather than applied as a delta, running it twice
    or out of order converges on the same value.
    """

    def __init__(self, session: AsyncSession, pricing: Optional[PricingTable] = None):
        self.session = session
        self.pricing = pricing or default_pricing
        self.student_repo = StudentRepository(session)
        self.transaction_repo = TransactionRepository(session)

    async def paid_total(self, student_id: str) -> int:
        return await self.transaction_repo.sum_success(student_id)

    async def resolve(self, student: Student) -> PaymentStatus:
        """Compute the status for a loaded student without writing it."""
        tuition = self.pricing.tuition_for(student.duration)
        paid = await self.paid_total(student.id)
        return derive_status(paid, tuition)

    async def recompute(self, student_id: str) -> PaymentStatus:
        """Recompute and persist the payment status for a student.

        Args:
            student_id: Student to recompute.

        Returns:
            The derived PaymentStatus.

        Raises:
            UnknownStudent: If no student has this ID.
            UnknownPlan: If the student's plan is not priced.
        """
        student = await self.student_repo.get_by_id(student_id)
        if student is None:
            raise UnknownStudent(student_id)

        derived = await self.resolve(student)
        current = PaymentStatus(student.payment_status)

        if derived == current:
            return derived

        if derived.rank < current.rank:
            # Only reachable if the cached value was edited outside this package
            logger.warning(
                f"Cached status {current.value} for student {student_id} is ahead of "
                f"the ledger; resetting to {derived.value}"
            )

        await self.student_repo.update_status(student, derived.value)
        return derived
