"""
Callback-style adapter: `handler(request, response, call_next)`.

For hand-rolled servers and frameworks whose middleware receives the request,
the response and a continuation. The continuation runs bound to the request id,
and receives scoped request/response objects so that listeners registered on
them later ("end", "close", "finish") still read the right id.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from rtracer.ids import resolve_request_id
from rtracer.schemas.options import RequestTracerOptions, build_options
from rtracer.store import ExecutionHandle, PropagationStore
from rtracer.tracer import get_store, wrap_http_emitters

logger = logging.getLogger(__name__)


def callback_middleware(
    options: RequestTracerOptions | None = None,
    *,
    store: PropagationStore | None = None,
    **kwargs: Any,
) -> Callable[[Any, Any, Callable[[Any, Any], Any]], Any]:
    """
    Build a `(request, response, call_next)` handler.

    `request.headers` is read for the inbound id; with `echo_header` the id is
    written to `response.headers` before the chain continues. The handler
    returns whatever `call_next` returns (await it if it is a coroutine).
    """

    opts = build_options(options, **kwargs)
    target = store or get_store()

    def _handler(request: Any, response: Any, call_next: Callable[[Any, Any], Any]) -> Any:
        request_id = resolve_request_id(request, getattr(request, "headers", None), opts)
        logger.debug("Request id resolved: %s", request_id)

        if opts.echo_header:
            response.headers[opts.header_name] = str(request_id)

        def _continue() -> Any:
            scoped_request, scoped_response = wrap_http_emitters(
                request, response, ExecutionHandle.capture()
            )
            return call_next(scoped_request, scoped_response)

        return target.run(request_id, _continue)

    return _handler
