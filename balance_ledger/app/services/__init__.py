from .engine import TransferEngine, TransferResult
from .ledger import LedgerService
from .repository import AccountRepository
from .retry import transfer_with_retry
from .transactions import TransactionManager, UnitOfWork

__all__ = [
    "AccountRepository",
    "LedgerService",
    "TransactionManager",
    "TransferEngine",
    "TransferResult",
    "UnitOfWork",
    "transfer_with_retry",
]
