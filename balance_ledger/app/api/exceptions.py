from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..core.errors import (
    ConflictError,
    DuplicateEmailError,
    InsufficientFundsError,
    LedgerError,
    NotFoundError,
    StorageError,
    TransferTimeoutError,
    ValidationError,
)


def _error_response(status_code: int, exc: LedgerError) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def validation_error_handler(
        request: Request, exc: ValidationError
    ) -> JSONResponse:
        return _error_response(400, exc)

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return _error_response(404, exc)

    @app.exception_handler(DuplicateEmailError)
    async def duplicate_email_handler(
        request: Request, exc: DuplicateEmailError
    ) -> JSONResponse:
        return _error_response(409, exc)

    @app.exception_handler(InsufficientFundsError)
    async def insufficient_funds_handler(
        request: Request, exc: InsufficientFundsError
    ) -> JSONResponse:
        return _error_response(409, exc)

    @app.exception_handler(ConflictError)
    async def conflict_handler(request: Request, exc: ConflictError) -> JSONResponse:
        return _error_response(409, exc)

    @app.exception_handler(TransferTimeoutError)
    async def timeout_handler(
        request: Request, exc: TransferTimeoutError
    ) -> JSONResponse:
        return _error_response(504, exc)

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
        # Store details stay in the logs.
        return JSONResponse(
            status_code=500,
            content={"kind": exc.kind, "detail": "Internal server error"},
        )
