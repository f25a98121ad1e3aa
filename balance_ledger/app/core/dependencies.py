import secrets
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status

from ..services import LedgerService, TransactionManager
from .config import Settings, get_settings

def get_transaction_manager(request: Request) -> TransactionManager:
    return request.app.state.transactions

def get_ledger_service(
    transactions: TransactionManager = Depends(get_transaction_manager),
    settings: Settings = Depends(get_settings),
) -> LedgerService:
    return LedgerService(transactions, settings=settings)

def require_api_key(
    api_key: Optional[str] = Header(default=None, alias="X-API-Key"),
    settings: Settings = Depends(get_settings),
) -> None:
    if settings.api_key is None:
        return
    if api_key is None or not secrets.compare_digest(api_key, settings.api_key):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthorized")
