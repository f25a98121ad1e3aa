from __future__ import annotations

from typing import Any, Optional


class LedgerError(Exception):
    """Base class for every failure the ledger reports to its callers."""

    kind = "LedgerError"
    retryable = False

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "detail": self.detail}


class ValidationError(LedgerError):
    """Raised for malformed input. Never mutates state."""

    kind = "ValidationError"


class DuplicateEmailError(LedgerError):
    """Raised when an account with the same email already exists."""

    kind = "DuplicateEmailError"


class NotFoundError(LedgerError):
    kind = "NotFoundError"


class AccountNotFoundError(NotFoundError):
    """Raised when an account id is missing from the store."""

    kind = "AccountNotFoundError"

    def __init__(self, account_id: Any, who: str = "account") -> None:
        super().__init__(f"{who.capitalize()} account {account_id} not found")
        self.account_id = account_id
        self.who = who

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["who"] = self.who
        return data


class InsufficientFundsError(LedgerError):
    """Raised when a transfer would drop the sender balance below zero."""

    kind = "InsufficientFundsError"

    def __init__(self, have: int, need: int) -> None:
        super().__init__(f"Insufficient funds (balance: {have}, need: {need})")
        self.have = have
        self.need = need

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(have=self.have, need=self.need)
        return data


class ConflictError(LedgerError):
    """Serialization failure, deadlock or lock contention. State is unchanged."""

    kind = "ConflictError"
    retryable = True


class TransferTimeoutError(LedgerError):
    """Deadline exceeded; the unit of work was rolled back."""

    kind = "TimeoutError"
    retryable = True


class StorageError(LedgerError):
    """Connectivity or IO fault at the store boundary."""

    kind = "StorageError"

    def __init__(self, detail: str, operation: Optional[str] = None) -> None:
        super().__init__(detail)
        self.operation = operation
