"""Read models for the audit and reconciliation views."""

from datetime import datetime
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, ConfigDict, Field


class TransactionRecord(BaseModel):
    """A ledger row as shown to operators."""
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Internal transaction ID")
    amount: int = Field(..., description="Amount in whole currency units")
    kind: str = Field(..., description="Installment kind (initial/balance)")
    reference: str = Field(..., description="Provider reference")
    status: str = Field(..., description="Transaction status")
    created_at: datetime = Field(..., description="Time the ledger row was written")


class InstallmentLine(BaseModel):
    """One installment paired against its expected share."""
    id: str
    amount: int = Field(..., description="Amount actually received")
    expected: int = Field(..., description="Expected share from the pricing table")
    status: str
    reference: str
    date: datetime

    @property
    def difference(self) -> int:
        """Received minus expected; negative means short."""
        return self.amount - self.expected


class StudentSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    full_name: str
    email: str
    phone: Optional[str] = None
    duration: int
    payment_status: str


class AuditView(BaseModel):
    """Expected vs. actual payments for one student."""
    student: StudentSummary
    tuition: int
    expected_initial: int
    expected_balance: int
    initial: Optional[InstallmentLine] = None
    balance: Optional[InstallmentLine] = None
    paid_total: int = Field(..., description="Sum of every successful transaction")
    outstanding: int = Field(..., description="Tuition still owed, never negative")
    overpaid: int = Field(default=0, description="Amount received beyond tuition")
    derived_status: str = Field(..., description="Status recomputed from the ledger")
    snapshot: str = Field(..., description="Human-readable installment summary")
    transactions: List[TransactionRecord] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def status_in_sync(self) -> bool:
        """Whether the cached status matches the ledger."""
        return self.student.payment_status == self.derived_status

    def to_dict(self, include_transactions: bool = True) -> Dict[str, Any]:
        data = self.model_dump(mode="json")
        data["status_in_sync"] = self.status_in_sync
        if not include_transactions:
            data.pop("transactions", None)
        return data


class LedgerRow(BaseModel):
    """A transaction with its owning student's identity."""
    transaction: TransactionRecord
    student_id: str
    full_name: str
    email: str


class LedgerSummary(BaseModel):
    sum_success: int = 0
    success_count: int = 0
    pending_count: int = 0
    failed_count: int = 0


class LedgerListing(BaseModel):
    """A page of the filtered ledger plus totals over all matching rows."""
    rows: List[LedgerRow] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 20
    summary: LedgerSummary = Field(default_factory=LedgerSummary)


class OutstandingRecord(BaseModel):
    """A student who still owes tuition."""
    student_id: str
    full_name: str
    email: str
    duration: int
    payment_status: str
    tuition: int
    paid_total: int
    outstanding: int
    next_installment: str = Field(..., description="initial or balance")
