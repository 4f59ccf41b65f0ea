"""
Request id and timing hooks.

Each request gets ``g.request_id`` (the caller's X-Request-ID when it looks
sane, otherwise a fresh one) which is echoed back on the response together
with X-Request-Duration-Ms.  Requests slower than ``SLOW_REQUEST_MS`` are
logged at WARNING, 5xx at ERROR, the rest at DEBUG.  Health probes are not
logged.
"""

import logging
import re
import time
import uuid

from flask import Flask, current_app, g, request

logger = logging.getLogger(__name__)

_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,64}$")
_QUIET_PREFIX = "/api/v1/health"


def _incoming_request_id() -> str:
    supplied = request.headers.get("X-Request-ID", "")
    return supplied if _REQUEST_ID_RE.match(supplied) else uuid.uuid4().hex[:12]


def init_request_timing(app: Flask):
    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = _incoming_request_id()

    @app.after_request
    def _log_request(response):
        start = getattr(g, "request_start", None)
        if start is None:
            return response

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        response.headers["X-Request-ID"] = g.request_id
        if request.path.startswith(_QUIET_PREFIX):
            return response

        extra = {
            "method": request.method,
            "path": request.path,
            "status": response.status_code,
            "duration_ms": round(duration_ms, 1),
            "team_id": (request.view_args or {}).get("team_id"),
        }
        if duration_ms > current_app.config.get("SLOW_REQUEST_MS", 1000):
            level = logging.WARNING
        elif response.status_code >= 500:
            level = logging.ERROR
        else:
            level = logging.DEBUG
        logger.log(level, "%s %s -> %d (%.0fms)", request.method, request.path,
                   response.status_code, duration_ms, extra=extra)
        return response
