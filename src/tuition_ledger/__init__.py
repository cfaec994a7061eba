# tuition_ledger package
__version__ = "0.1.0"

from .database import (
    Student,
    Transaction,
    PaymentStatus,
    TransactionStatus,
    InstallmentKind,
    init_db,
    close_db,
    get_db,
)
from .pricing import PricingTable, PricingEntry, PlanDuration, split_tuition
from .services import LedgerService, RecordResult
from .status import StatusResolver, derive_status
from .signature import SignatureVerifier
from .webhooks import WebhookPipeline, HttpOutcome

# Reconciliation exports
from .reconciliation import (
    ReconciliationService,
    AuditView,
    Reconciler,
    ReportGenerator,
)
