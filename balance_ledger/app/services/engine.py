from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from sqlmodel import Session

from ..core.errors import (
    AccountNotFoundError,
    InsufficientFundsError,
    LedgerError,
    ValidationError,
)
from ..models import MAX_BALANCE
from .repository import AccountRepository
from .transactions import TransactionManager, UnitOfWork


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransferResult:
    from_id: int
    to_id: int
    amount: int
    from_balance: int
    to_balance: int


class TransferEngine:
    """Moves funds between two accounts inside a single unit of work.

    Steps: validate, lock the sender row, check funds and the receiver,
    apply a guarded debit and a credit, commit. Any failure rolls the whole
    unit of work back, so a transfer is either fully applied or not at all.
    The sender row is always locked first.
    """

    def __init__(
        self,
        transactions: TransactionManager,
        repository_factory: Callable[[Session], AccountRepository] = AccountRepository,
    ) -> None:
        self.transactions = transactions
        self.repository_factory = repository_factory

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------
    def _validate(self, from_id: int, to_id: int, amount: int) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise ValidationError("Amount must be an integer amount of minor units")
        if amount <= 0:
            raise ValidationError("Amount must be positive")
        if amount > MAX_BALANCE:
            raise ValidationError(f"Amount must not exceed {MAX_BALANCE}")
        if from_id == to_id:
            raise ValidationError("Cannot transfer to the same account")

    def _apply(self, uow: UnitOfWork, from_id: int, to_id: int, amount: int) -> TransferResult:
        accounts = self.repository_factory(uow.session)

        sender = accounts.get_for_update(from_id)
        if sender is None:
            raise AccountNotFoundError(from_id, who="sender")
        uow.check_deadline()

        if sender.balance < amount:
            raise InsufficientFundsError(have=sender.balance, need=amount)
        if not accounts.exists(to_id):
            raise AccountNotFoundError(to_id, who="receiver")
        uow.check_deadline()

        if not accounts.debit(from_id, amount):
            # Guard tripped: the balance moved under us despite the lock.
            raise InsufficientFundsError(have=accounts.balance_of(from_id), need=amount)
        if not accounts.credit(to_id, amount):
            # Receiver exists (checked above), so the overflow guard refused it.
            raise ValidationError("Transfer would overflow the receiver balance")
        uow.check_deadline()

        return TransferResult(
            from_id=from_id,
            to_id=to_id,
            amount=amount,
            from_balance=accounts.balance_of(from_id),
            to_balance=accounts.balance_of(to_id),
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def transfer(
        self,
        from_id: int,
        to_id: int,
        amount: int,
        timeout: Optional[float] = None,
    ) -> TransferResult:
        try:
            self._validate(from_id, to_id, amount)
            result = self.transactions.with_transaction(
                lambda uow: self._apply(uow, from_id, to_id, amount),
                timeout=timeout,
                operation="transfer",
            )
        except LedgerError as exc:
            logger.info(
                "transfer.rejected",
                extra={"from_id": from_id, "to_id": to_id, "kind": exc.kind},
            )
            raise

        logger.info(
            "transfer.completed",
            extra={
                "from_id": from_id,
                "to_id": to_id,
                "amount": amount,
                "from_balance": result.from_balance,
                "to_balance": result.to_balance,
            },
        )
        return result
