"""Audit and reconciliation views over the tuition ledger.

Features:
- Per-student audit comparing expected installments with received payments
- Filtered, paginated ledger listing with per-status totals
- Outstanding tuition list for follow-up
- JSON, CSV and text rendering
"""

from .models import (
    TransactionRecord,
    InstallmentLine,
    StudentSummary,
    AuditView,
    LedgerRow,
    LedgerSummary,
    LedgerListing,
    OutstandingRecord,
)
from .reconciler import Reconciler
from .service import ReconciliationService
from .report import ReportGenerator

__all__ = [
    # Models
    "TransactionRecord",
    "InstallmentLine",
    "StudentSummary",
    "AuditView",
    "LedgerRow",
    "LedgerSummary",
    "LedgerListing",
    "OutstandingRecord",
    # Core Components
    "Reconciler",
    "ReconciliationService",
    "ReportGenerator",
]
