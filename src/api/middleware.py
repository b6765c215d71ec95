"""HTTP middleware: request ids and access logging."""

from __future__ import annotations

import logging
import time
import uuid

from fastapi import FastAPI, Request

from config.logging_setup import request_id_var

LOGGER = logging.getLogger("api.access")

REQUEST_ID_HEADER = "X-Request-ID"


def install_request_context(app: FastAPI) -> None:
    @app.middleware("http")
    async def request_context(request: Request, call_next):  # noqa: ANN001 - FastAPI middleware signature
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        reset_token = request_id_var.set(request_id)
        start = time.perf_counter()
        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            LOGGER.info(
                "Request handled method=%s path=%s status=%s duration_ms=%.1f ua=%s ip=%s",
                request.method,
                request.url.path,
                response.status_code,
                (time.perf_counter() - start) * 1000,
                request.headers.get("user-agent", "-"),
                request.client.host if request.client else "-",
            )
            return response
        finally:
            request_id_var.reset(reset_token)
