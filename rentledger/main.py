# rentledger/main.py
from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .exception_handlers import setup_exception_handlers
from .logging_config import configure_logging

from .middleware.request_context import RequestContextMiddleware

from .routers.health import router as health_router
from .routers.contracts import router as contracts_router
from .routers.installments import router as installments_router
from .routers.payments import router as payments_router
from .routers.dashboard import router as dashboard_router
from .routers.ops import router as ops_router

API_PREFIX = "/api"


def _cors_origins() -> list[str]:
    val = getattr(settings, "cors_allow_origins", ["*"])
    if isinstance(val, str):
        v = val.strip()
        return ["*"] if v == "*" else [x.strip() for x in v.split(",") if x.strip()]
    if isinstance(val, list) and val:
        return val
    return ["*"]


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(title="Rent Ledger", version="0.1.0")

    app.add_middleware(RequestContextMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    setup_exception_handlers(app)

    app.include_router(health_router, prefix=API_PREFIX)

    # Ledger
    app.include_router(contracts_router, prefix=API_PREFIX)
    app.include_router(installments_router, prefix=API_PREFIX)
    app.include_router(payments_router, prefix=API_PREFIX)

    # Office views + ops
    app.include_router(dashboard_router, prefix=API_PREFIX)
    app.include_router(ops_router, prefix=API_PREFIX)

    return app


app = create_app()
