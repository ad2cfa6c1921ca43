"""Request context middleware: request id, caller id, timing.

Grading and attempt starts from many students interleave in the logs.
Every line emitted while serving a request carries that request's id
and, once the identity dependency has run, the caller's user id:

  INFO  [req-abc] Attempt started id=... user=7f3c...
  INFO  [req-xyz] Attempt graded id=... score=70.00
  WARN  [req-abc] Lost grading race attempt=...

Both values live in ContextVars.  FastAPI serves concurrent requests on
one thread, so thread-locals would leak between them; each asyncio task
gets its own copy of a ContextVar.

The completion line also records method, path, status and duration in
milliseconds, which the JSON formatter emits as separate fields.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")
user_id_var: ContextVar[str] = ContextVar("user_id", default="-")


class _RequestContextFilter(logging.Filter):
    """Copy the current request context onto every LogRecord."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("-")  # type: ignore[attr-defined]
        if getattr(record, "user_id", None) is None:
            record.user_id = user_id_var.get("-")  # type: ignore[attr-defined]
        return True


# Installed on the root logger so every module's logger inherits it.
root_logger = logging.getLogger()
if not any(isinstance(f, _RequestContextFilter) for f in root_logger.filters):
    root_logger.addFilter(_RequestContextFilter())


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assign a request id, time the request, log one completion line.

    X-Request-ID from the client is reused when present, otherwise a
    UUID is generated; either way it is echoed on the response.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        req_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request_id_var.set(req_id)
        # The identity dependency validates it; this is only for the log line
        caller = request.headers.get("x-user-id") or "-"
        user_id_var.set(caller)

        start = time.monotonic()
        response = await call_next(request)
        duration_ms = round((time.monotonic() - start) * 1000, 1)

        logger.info(
            "%s %s → %d (%.1fms)",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            extra={
                "request_id": req_id,
                "user_id": caller,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )

        response.headers["X-Request-ID"] = req_id
        return response
