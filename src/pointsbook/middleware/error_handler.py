"""Global error handlers: consistent JSON error responses.

Domain errors map to a status by type and carry their ``code`` and
``context`` so clients can tell, say, which balance was short by how much.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from pointsbook.ledger.errors import (
    AuthenticationError,
    Forbidden,
    InsufficientAllowance,
    InsufficientBalance,
    InvalidInput,
    LedgerError,
    NotFound,
    StoreUnavailable,
    TransactionConflict,
)

logger = structlog.get_logger()

_STATUS_BY_ERROR: dict[type[LedgerError], int] = {
    NotFound: 404,
    InsufficientBalance: 409,
    InsufficientAllowance: 409,
    TransactionConflict: 409,
    InvalidInput: 422,
    Forbidden: 403,
    AuthenticationError: 401,
    StoreUnavailable: 503,
}


def status_for(exc: LedgerError) -> int:
    """HTTP status for a domain error, resolved along the class hierarchy."""
    for cls in type(exc).__mro__:
        if cls in _STATUS_BY_ERROR:
            return _STATUS_BY_ERROR[cls]
    return 400


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
        status = status_for(exc)
        log = logger.error if status >= 500 else logger.info
        log("request_rejected", path=request.url.path, code=exc.code, status=status, error=exc.message)
        return JSONResponse(
            status_code=status,
            content={"detail": exc.message, "code": exc.code, "context": exc.context},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Handle HTTP exceptions with consistent JSON format."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        """Handle validation errors with consistent JSON format."""
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation error", "code": "invalid_input", "errors": exc.errors()},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions, always JSON."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )
