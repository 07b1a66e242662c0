# rentledger/exception_handlers.py
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .errors import LedgerError, TransientStoreError
from .middleware.request_context import get_request_id

log = logging.getLogger(__name__)


def setup_exception_handlers(app: FastAPI) -> None:
    """Maps the ledger error taxonomy onto HTTP status codes."""

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        if isinstance(exc, TransientStoreError):
            log.warning("storage unavailable: %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=int(exc.status_code),
            content={
                "detail": exc.message,
                "error": type(exc).__name__,
                "request_id": get_request_id(),
            },
        )
