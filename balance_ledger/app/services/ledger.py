from __future__ import annotations

import logging
from typing import Optional

from ..core.config import Settings, get_settings
from ..models import (
    AccountCreate,
    AccountModel,
    AccountResponse,
    TransferRequest,
    TransferResponse,
)
from .engine import TransferEngine
from .repository import AccountRepository
from .retry import transfer_with_retry
from .transactions import TransactionManager


logger = logging.getLogger(__name__)


class LedgerService:
    def __init__(
        self,
        transactions: TransactionManager,
        engine: Optional[TransferEngine] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.transactions = transactions
        self.engine = engine or TransferEngine(transactions)
        self.settings = settings or get_settings()

    def _account_to_response(self, account: AccountModel) -> AccountResponse:
        return AccountResponse(
            id=account.id,
            name=account.name,
            email=account.email,
            balance=account.balance,
            created_at=account.created_at,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def create_account(self, payload: AccountCreate) -> AccountResponse:
        with self.transactions.unit_of_work(operation="account.create") as uow:
            account = AccountRepository(uow.session).create(
                payload.name, payload.email, payload.initial_balance
            )
            response = self._account_to_response(account)
        logger.info(
            "account.created",
            extra={"account_id": response.id, "name": response.name},
        )
        return response

    def get_account(self, account_id: int) -> AccountResponse:
        with self.transactions.unit_of_work(operation="account.get") as uow:
            account = AccountRepository(uow.session).get_by_id(account_id)
            return self._account_to_response(account)

    def list_accounts(self, limit: Optional[int] = None, offset: int = 0) -> list[AccountResponse]:
        with self.transactions.unit_of_work(operation="account.list") as uow:
            accounts = AccountRepository(uow.session).list(limit=limit, offset=offset)
            return [self._account_to_response(account) for account in accounts]

    def transfer(self, payload: TransferRequest) -> TransferResponse:
        result = transfer_with_retry(
            self.engine,
            payload.from_id,
            payload.to_id,
            payload.amount,
            attempts=self.settings.transfer_max_attempts,
            base_delay=self.settings.transfer_backoff_base,
            max_delay=self.settings.transfer_backoff_max,
            timeout=self.settings.transfer_timeout,
        )
        return TransferResponse(
            from_id=result.from_id,
            to_id=result.to_id,
            amount=result.amount,
            from_balance=result.from_balance,
            to_balance=result.to_balance,
        )
