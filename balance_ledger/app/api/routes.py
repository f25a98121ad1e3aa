from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from ..core.dependencies import get_ledger_service, require_api_key
from ..models import (
    AccountCreate,
    AccountResponse,
    TransferRequest,
    TransferResponse,
)
from ..services import LedgerService


router = APIRouter(
    prefix="/accounts",
    tags=["accounts"],
    dependencies=[Depends(require_api_key)],
)

@router.post("", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
def create_account(
    payload: AccountCreate,
    service: LedgerService = Depends(get_ledger_service),
) -> AccountResponse:
    return service.create_account(payload)

@router.get("", response_model=list[AccountResponse])
def list_accounts(
    limit: Optional[int] = Query(default=None, ge=0),
    offset: int = Query(default=0, ge=0),
    service: LedgerService = Depends(get_ledger_service),
) -> list[AccountResponse]:
    return service.list_accounts(limit=limit, offset=offset)

@router.get("/{account_id}", response_model=AccountResponse)
def get_account(
    account_id: int,
    service: LedgerService = Depends(get_ledger_service),
) -> AccountResponse:
    return service.get_account(account_id)

transfer_router = APIRouter(
    prefix="/transfers",
    tags=["transfers"],
    dependencies=[Depends(require_api_key)],
)

@transfer_router.post("", response_model=TransferResponse)
def create_transfer(
    payload: TransferRequest,
    service: LedgerService = Depends(get_ledger_service),
) -> TransferResponse:
    return service.transfer(payload)

__all__ = ["router", "transfer_router"]
