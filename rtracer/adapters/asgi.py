"""
Starlette / FastAPI adapter (context-object style).

The handler shape is `(request, call_next) -> awaitable response`: the framework
hands us one object describing the request and expects the completion of the
rest of the chain back.

Usage:

    app.add_middleware(RequestTracerMiddleware, echo_header=True)

or, with FastAPI's decorator form:

    app.middleware("http")(request_tracer_http_middleware(use_header=True))
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from rtracer.ids import resolve_request_id
from rtracer.schemas.options import RequestTracerOptions, build_options
from rtracer.store import PropagationStore
from rtracer.tracer import get_store

logger = logging.getLogger(__name__)

CallNext = Callable[[Request], Awaitable[Response]]


def request_tracer_http_middleware(
    options: RequestTracerOptions | None = None,
    *,
    store: PropagationStore | None = None,
    **kwargs: Any,
) -> Callable[[Request, CallNext], Awaitable[Response]]:
    """Build an `@app.middleware("http")` function that binds the request id."""

    opts = build_options(options, **kwargs)
    target = store or get_store()

    async def _middleware(request: Request, call_next: CallNext) -> Response:
        request_id = resolve_request_id(request, request.headers, opts)
        logger.debug("Request id resolved: %s", request_id)

        # call_next spawns the downstream app as a new task; the task copies the
        # context that is active while the bound coroutine runs.
        response = await target.run(request_id, call_next, request)

        if opts.echo_header:
            response.headers[opts.header_name] = str(request_id)
        return response

    return _middleware


class RequestTracerMiddleware(BaseHTTPMiddleware):
    """Binds every request to an id for the whole downstream chain."""

    def __init__(
        self,
        app: ASGIApp,
        options: RequestTracerOptions | None = None,
        *,
        store: PropagationStore | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(app)
        self.options = build_options(options, **kwargs)
        self._dispatch = request_tracer_http_middleware(self.options, store=store)

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        return await self._dispatch(request, call_next)
