# rentledger/middleware/request_context.py
from __future__ import annotations

import logging
import time
import uuid
from contextvars import ContextVar
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..config import settings

log = logging.getLogger("rentledger.request")

REQUEST_ID_HEADER = "X-Request-ID"
_MAX_INCOMING_ID = 128

request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
office_ctx: ContextVar[Optional[str]] = ContextVar("office_slug", default=None)


def get_request_id() -> Optional[str]:
    return request_id_ctx.get()


def get_office_slug() -> Optional[str]:
    return office_ctx.get()


def _incoming_id(request: Request) -> Optional[str]:
    rid = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
    if not rid or len(rid) > _MAX_INCOMING_ID:
        return None
    return rid


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Per-request context for log lines.

    Reuses a caller-supplied X-Request-ID (or mints one), remembers the
    office slug from the dev auth header, echoes the id back on the response
    and writes one access line when the request finishes, failed or not.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        rid = _incoming_id(request) or uuid.uuid4().hex
        office = request.headers.get(settings.dev_header_org_slug)

        rid_token = request_id_ctx.set(rid)
        office_token = office_ctx.set(office)
        t0 = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers[REQUEST_ID_HEADER] = rid
            return response
        finally:
            log.info(
                "%s %s -> %s",
                request.method,
                request.url.path,
                status_code,
                extra={
                    "http_method": request.method,
                    "http_path": request.url.path,
                    "status_code": status_code,
                    "latency_ms": int((time.perf_counter() - t0) * 1000),
                },
            )
            office_ctx.reset(office_token)
            request_id_ctx.reset(rid_token)
