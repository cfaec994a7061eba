"""Pairing of ledger rows against the expected installment split."""

import logging
from typing import List, Optional, Tuple

from ..database import InstallmentKind, TransactionStatus
from ..pricing import PricingEntry, format_amount
from ..status import derive_status
from .models import (
    AuditView,
    InstallmentLine,
    StudentSummary,
    TransactionRecord,
)

logger = logging.getLogger(__name__)


class Reconciler:
    """Builds audit views from a student's ledger history. Pure; no I/O."""

    @staticmethod
    def _first_success(
        transactions: List[TransactionRecord],
        kind: InstallmentKind,
    ) -> Optional[TransactionRecord]:
        candidates = [
            t for t in transactions
            if t.status == TransactionStatus.SUCCESS.value and t.kind == kind.value
        ]
        if len(candidates) > 1 and kind == InstallmentKind.INITIAL:
            logger.error(
                f"Found {len(candidates)} successful initial payments; expected at most one"
            )
        if not candidates:
            return None
        return min(candidates, key=lambda t: (t.created_at, t.id))

    @staticmethod
    def _line(record: Optional[TransactionRecord], expected: int) -> Optional[InstallmentLine]:
        if record is None:
            return None
        return InstallmentLine(
            id=record.id,
            amount=record.amount,
            expected=expected,
            status=record.status,
            reference=record.reference,
            date=record.created_at,
        )

    def pair_installments(
        self,
        entry: PricingEntry,
        transactions: List[TransactionRecord],
    ) -> Tuple[Optional[InstallmentLine], Optional[InstallmentLine]]:
        """Return (initial, balance) lines for the earliest success of each kind."""
        initial = self._first_success(transactions, InstallmentKind.INITIAL)
        balance = self._first_success(transactions, InstallmentKind.BALANCE)
        return (
            self._line(initial, entry.initial_share),
            self._line(balance, entry.balance_share),
        )

    @staticmethod
    def build_snapshot(
        entry: PricingEntry,
        paid_total: int,
        initial: Optional[InstallmentLine],
    ) -> str:
        """Describe which installment is outstanding."""
        tuition = entry.total_cost
        outstanding = max(tuition - paid_total, 0)

        if paid_total <= 0:
            return (
                f"No payment received. Initial installment of "
                f"{format_amount(entry.initial_share)} outstanding."
            )

        if paid_total >= tuition:
            snapshot = f"Fully paid: {format_amount(paid_total)} of {format_amount(tuition)} received."
            if paid_total > tuition:
                snapshot += f" Overpaid by {format_amount(paid_total - tuition)}."
            return snapshot

        if initial is not None and paid_total < entry.initial_share:
            return (
                f"Initial installment short: {format_amount(paid_total)} of "
                f"{format_amount(entry.initial_share)} received. "
                f"{format_amount(outstanding)} outstanding in total."
            )

        if initial is not None:
            return (
                f"Initial installment received. Balance of "
                f"{format_amount(outstanding)} outstanding."
            )

        return (
            f"{format_amount(paid_total)} of {format_amount(tuition)} received. "
            f"{format_amount(outstanding)} outstanding."
        )

    def build_audit(
        self,
        student: StudentSummary,
        entry: PricingEntry,
        transactions: List[TransactionRecord],
    ) -> AuditView:
        """Assemble the full audit view for one student.

        Args:
            student: Student identity and cached status.
            entry: Pricing entry for the student's plan.
            transactions: Every ledger row for the student, any status.

        Returns:
            AuditView comparing expected and received amounts.
        """
        initial, balance = self.pair_installments(entry, transactions)
        paid_total = sum(
            t.amount for t in transactions if t.status == TransactionStatus.SUCCESS.value
        )

        return AuditView(
            student=student,
            tuition=entry.total_cost,
            expected_initial=entry.initial_share,
            expected_balance=entry.balance_share,
            initial=initial,
            balance=balance,
            paid_total=paid_total,
            outstanding=max(entry.total_cost - paid_total, 0),
            overpaid=max(paid_total - entry.total_cost, 0),
            derived_status=derive_status(paid_total, entry.total_cost).value,
            snapshot=self.build_snapshot(entry, paid_total, initial),
            transactions=transactions,
        )
