"""Database module for the student ledger."""

from .models import (
    Student,
    Transaction,
    Base,
    PaymentStatus,
    TransactionStatus,
    InstallmentKind,
)
from .session import (
    get_db,
    get_database_url,
    init_db,
    close_db,
    create_async_engine,
    get_async_session_factory,
    DatabaseManager,
)
from .repository import (
    StudentRepository,
    TransactionRepository,
)

__all__ = [
    # Models
    "Student",
    "Transaction",
    "Base",
    "PaymentStatus",
    "TransactionStatus",
    "InstallmentKind",
    # Session management
    "get_db",
    "get_database_url",
    "init_db",
    "close_db",
    "create_async_engine",
    "get_async_session_factory",
    "DatabaseManager",
    # Repositories
    "StudentRepository",
    "TransactionRepository",
]
