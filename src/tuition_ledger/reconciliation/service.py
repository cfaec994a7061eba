"""Service layer for audit and reconciliation reads."""

import logging
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..database import (
    InstallmentKind,
    TransactionStatus,
    StudentRepository,
    TransactionRepository,
)
from ..exceptions import UnknownStudent
from ..pricing import PricingTable, default_pricing
from .models import (
    AuditView,
    LedgerListing,
    LedgerRow,
    LedgerSummary,
    OutstandingRecord,
    StudentSummary,
    TransactionRecord,
)
from .reconciler import Reconciler
from .report import ReportGenerator

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20


class ReconciliationService:
    """Read-only projections over students, pricing and the ledger.

    Nothing here writes: the session is only used for SELECTs.
    """

    def __init__(
        self,
        session: AsyncSession,
        pricing: Optional[PricingTable] = None,
    ):
        """Initialize the reconciliation service.

        Args:
            session: Async database session.
            pricing: Pricing table; defaults to the standard tuition table.
        """
        self.session = session
        self.pricing = pricing or default_pricing
        self.student_repo = StudentRepository(session)
        self.transaction_repo = TransactionRepository(session)
        self.reconciler = Reconciler()

    async def audit(self, student_id: str) -> AuditView:
        """Expected vs. actual installments for one student.

        Raises:
            UnknownStudent: If no student has this ID.
            UnknownPlan: If the student's plan is not priced.
        """
        student = await self.student_repo.get_by_id(student_id)
        if student is None:
            raise UnknownStudent(student_id)

        entry = self.pricing.entry_for(student.duration)
        rows = await self.transaction_repo.list_for_student(student_id)
        transactions = [TransactionRecord.model_validate(row) for row in rows]

        view = self.reconciler.build_audit(
            student=StudentSummary.model_validate(student),
            entry=entry,
            transactions=transactions,
        )
        if not view.status_in_sync:
            logger.warning(
                f"Student {student_id} cached status {student.payment_status} differs "
                f"from ledger-derived {view.derived_status}"
            )
        return view

    async def audit_by_email(self, email: str) -> AuditView:
        student = await self.student_repo.get_by_email(email)
        if student is None:
            raise UnknownStudent(email=email)
        return await self.audit(student.id)

    async def list_transactions(
        self,
        status: Optional[str] = None,
        kind: Optional[str] = None,
        search: Optional[str] = None,
        month: Optional[int] = None,
        sort_key: str = "date",
        sort_dir: str = "desc",
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        all_rows: bool = False,
    ) -> LedgerListing:
        """Filtered, sorted, paginated ledger listing with status totals.

        The summary covers every row matching kind/search/month, regardless of
        the status filter and page.
        """
        page = max(page, 1)
        limit = None if all_rows else page_size
        offset = 0 if all_rows else (page - 1) * page_size

        pairs, total = await self.transaction_repo.search(
            status=status,
            kind=kind,
            search=search,
            month=month,
            sort_key=sort_key,
            sort_dir=sort_dir,
            limit=limit,
            offset=offset,
        )
        totals = await self.transaction_repo.totals_by_status(
            kind=kind, search=search, month=month
        )

        success = totals.get(TransactionStatus.SUCCESS.value, {})
        summary = LedgerSummary(
            sum_success=success.get("total_amount", 0),
            success_count=success.get("count", 0),
            pending_count=totals.get(TransactionStatus.PENDING.value, {}).get("count", 0),
            failed_count=totals.get(TransactionStatus.FAILED.value, {}).get("count", 0),
        )

        rows = [
            LedgerRow(
                transaction=TransactionRecord.model_validate(txn),
                student_id=student.id,
                full_name=student.full_name,
                email=student.email,
            )
            for txn, student in pairs
        ]
        return LedgerListing(
            rows=rows,
            total=total,
            page=1 if all_rows else page,
            page_size=total if all_rows else page_size,
            summary=summary,
        )

    async def list_outstanding(self) -> List[OutstandingRecord]:
        """Every student who still owes tuition, ordered by registration."""
        students = await self.student_repo.list_not_fully_paid()
        paid = await self.transaction_repo.sum_success_by_student([s.id for s in students])

        records = []
        for student in students:
            tuition = self.pricing.tuition_for(student.duration)
            paid_total = paid.get(student.id, 0)
            if paid_total >= tuition:
                # Cached status lagging the ledger; not actually outstanding
                logger.warning(f"Student {student.id} is paid up but cached as {student.payment_status}")
                continue
            records.append(OutstandingRecord(
                student_id=student.id,
                full_name=student.full_name,
                email=student.email,
                duration=student.duration,
                payment_status=student.payment_status,
                tuition=tuition,
                paid_total=paid_total,
                outstanding=tuition - paid_total,
                next_installment=(
                    InstallmentKind.INITIAL.value if paid_total == 0
                    else InstallmentKind.BALANCE.value
                ),
            ))

        logger.info(f"{len(records)} students with outstanding tuition")
        return records

    def generate_report(self, view: AuditView, format: str = "text") -> str:
        """Render an audit view as 'json', 'csv' or 'text'."""
        generator = ReportGenerator()
        if format == "json":
            return generator.audit_to_json(view)
        elif format == "csv":
            return generator.audit_to_csv(view)
        elif format == "text":
            return generator.audit_to_text(view)
        else:
            raise ValueError(f"Unsupported report format: {format}")
