"""Repository layer for student and ledger persistence operations."""

import logging
from typing import Optional, List, Dict

from sqlalchemy import select, func, and_, or_, extract
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    Student,
    Transaction,
    PaymentStatus,
    TransactionStatus,
)

logger = logging.getLogger(__name__)


class StudentRepository:
    """Read access to students plus the single write this package owns: payment status."""

    def __init__(self, session: AsyncSession):
        """Initialize the repository with a database session.

        Args:
            session: AsyncSession instance for database operations.
        """
        self.session = session

    async def create(
        self,
        full_name: str,
        email: str,
        duration: int,
        phone: Optional[str] = None,
    ) -> Student:
        """Create a student record in the not_paid state.

        Registration normally owns this; it lives here for tooling and tests.
        """
        student = Student(
            full_name=full_name,
            email=email.strip().lower(),
            duration=int(duration),
            phone=phone,
            payment_status=PaymentStatus.NOT_PAID.value,
        )
        self.session.add(student)
        await self.session.flush()

        logger.info(f"Created student {student.id} on a {duration}-month plan")
        return student

    async def get_by_id(self, student_id: str) -> Optional[Student]:
        result = await self.session.execute(
            select(Student).where(Student.id == student_id)
        )
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> Optional[Student]:
        """Find a student by email, ignoring case and surrounding whitespace."""
        result = await self.session.execute(
            select(Student).where(Student.email == email.strip().lower())
        )
        return result.scalar_one_or_none()

    async def get_for_update(self, student_id: str) -> Optional[Student]:
        """Load a student and lock its row until the unit of work ends.

        The lock is a no-op on SQLite, where the ledger insert itself takes the
        database write lock.
        """
        result = await self.session.execute(
            select(Student).where(Student.id == student_id).with_for_update()
        )
        return result.scalar_one_or_none()

    async def update_status(self, student: Student, new_status: str) -> Student:
        student.payment_status = new_status
        await self.session.flush()
        logger.info(f"Updated student {student.id} payment status to {new_status}")
        return student

    async def list_not_fully_paid(self) -> List[Student]:
        result = await self.session.execute(
            select(Student)
            .where(Student.payment_status != PaymentStatus.FULLY_PAID.value)
            .order_by(Student.created_at)
        )
        return list(result.scalars().all())


class TransactionRepository:
    """Repository for ledger rows. There is intentionally no delete."""

    def __init__(self, session: AsyncSession):
        """Initialize the repository with a database session.

        Args:
            session: AsyncSession instance for database operations.
        """
        self.session = session

    async def create(
        self,
        student_id: str,
        amount: int,
        kind: str,
        reference: str,
        status: str,
    ) -> Transaction:
        """Add a ledger row and flush it.

        Flushing sends the INSERT, so a duplicate reference surfaces here as
        ``sqlalchemy.exc.IntegrityError`` from the unique constraint.

        Args:
            student_id: Owning student ID.
            amount: Amount in whole currency units.
            kind: Installment kind (initial/balance).
            reference: Provider reference, unique across the ledger.
            status: Transaction status (success/pending/failed).

        Returns:
            Created Transaction instance.
        """
        transaction = Transaction(
            student_id=student_id,
            amount=amount,
            kind=kind,
            reference=reference,
            status=status,
        )
        self.session.add(transaction)
        await self.session.flush()

        logger.debug(
            f"Inserted {status} transaction {reference} for student {student_id}"
        )
        return transaction

    async def get_by_reference(self, reference: str) -> Optional[Transaction]:
        result = await self.session.execute(
            select(Transaction).where(Transaction.reference == reference)
        )
        return result.scalar_one_or_none()

    async def sum_success(
        self,
        student_id: str,
        exclude_id: Optional[str] = None,
    ) -> int:
        """Sum of successful amounts for a student.

        Args:
            student_id: Student to total.
            exclude_id: Optional transaction ID left out of the sum.

        Returns:
            Total in whole currency units, 0 when nothing was paid.
        """
        conditions = [
            Transaction.student_id == student_id,
            Transaction.status == TransactionStatus.SUCCESS.value,
        ]
        if exclude_id is not None:
            conditions.append(Transaction.id != exclude_id)

        result = await self.session.execute(
            select(func.coalesce(func.sum(Transaction.amount), 0)).where(*conditions)
        )
        return int(result.scalar_one())

    async def list_for_student(self, student_id: str) -> List[Transaction]:
        result = await self.session.execute(
            select(Transaction)
            .where(Transaction.student_id == student_id)
            .order_by(Transaction.created_at, Transaction.id)
        )
        return list(result.scalars().all())

    async def sum_success_by_student(self, student_ids: List[str]) -> Dict[str, int]:
        """Successful totals for many students in one query."""
        if not student_ids:
            return {}
        result = await self.session.execute(
            select(Transaction.student_id, func.sum(Transaction.amount))
            .where(
                and_(
                    Transaction.student_id.in_(student_ids),
                    Transaction.status == TransactionStatus.SUCCESS.value,
                )
            )
            .group_by(Transaction.student_id)
        )
        return {student_id: int(total or 0) for student_id, total in result.all()}

    def _search_conditions(
        self,
        status: Optional[str] = None,
        kind: Optional[str] = None,
        search: Optional[str] = None,
        month: Optional[int] = None,
    ) -> list:
        conditions = []
        if status:
            conditions.append(Transaction.status == status)
        if kind:
            conditions.append(Transaction.kind == kind)
        if month:
            conditions.append(extract("month", Transaction.created_at) == month)
        if search and search.strip():
            pattern = "%" + "%".join(search.split()) + "%"
            conditions.append(
                or_(
                    Student.full_name.ilike(pattern),
                    Student.email.ilike(pattern),
                    Transaction.reference.ilike(pattern),
                )
            )
        return conditions

    async def search(
        self,
        status: Optional[str] = None,
        kind: Optional[str] = None,
        search: Optional[str] = None,
        month: Optional[int] = None,
        sort_key: str = "date",
        sort_dir: str = "desc",
        limit: Optional[int] = 20,
        offset: int = 0,
    ) -> tuple[List[tuple[Transaction, Student]], int]:
        """Filtered ledger listing joined with the owning student.

        Args:
            status: Optional transaction status filter.
            kind: Optional installment kind filter.
            search: Free text matched against name, email and reference.
                Whitespace between words matches anything.
            month: Optional calendar month (1-12) of ``created_at``.
            sort_key: "date" or "amount".
            sort_dir: "asc" or "desc".
            limit: Page size, or None for everything.
            offset: Rows to skip.

        Returns:
            Tuple of ((Transaction, Student) rows, total matching rows).
        """
        conditions = self._search_conditions(status, kind, search, month)

        column = Transaction.amount if sort_key == "amount" else Transaction.created_at
        ordering = column.asc() if sort_dir == "asc" else column.desc()

        query = (
            select(Transaction, Student)
            .join(Student, Transaction.student_id == Student.id)
            .where(*conditions)
            .order_by(ordering, Transaction.id)
            .offset(offset)
        )
        if limit is not None:
            query = query.limit(limit)

        count_query = (
            select(func.count(Transaction.id))
            .join(Student, Transaction.student_id == Student.id)
            .where(*conditions)
        )

        rows = (await self.session.execute(query)).all()
        total = (await self.session.execute(count_query)).scalar_one()
        return [(txn, student) for txn, student in rows], int(total)

    async def totals_by_status(
        self,
        kind: Optional[str] = None,
        search: Optional[str] = None,
        month: Optional[int] = None,
    ) -> Dict[str, Dict[str, int]]:
        """Amount and count per transaction status for the same filters as search()."""
        conditions = self._search_conditions(None, kind, search, month)
        result = await self.session.execute(
            select(
                Transaction.status,
                func.coalesce(func.sum(Transaction.amount), 0),
                func.count(Transaction.id),
            )
            .join(Student, Transaction.student_id == Student.id)
            .where(*conditions)
            .group_by(Transaction.status)
        )
        return {
            status: {"total_amount": int(total), "count": int(count)}
            for status, total, count in result.all()
        }
