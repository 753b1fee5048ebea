"""
WSGI adapter.

WSGI is the callback-shaped interface of the Python world: the middleware gets
`environ` (the request), `start_response` (the response callback) and wraps the
next application.

The tricky part is the response body. A WSGI app returns an iterable that the
server consumes *after* the app call returned, so streaming generators would
otherwise run outside the request's logical execution. The body is wrapped so
iteration and `close()` re-enter it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from typing import Any

from rtracer.ids import resolve_request_id
from rtracer.schemas.options import RequestTracerOptions, build_options
from rtracer.store import ExecutionHandle, PropagationStore
from rtracer.tracer import get_store

logger = logging.getLogger(__name__)

WSGIApp = Callable[[dict[str, Any], Callable[..., Any]], Iterable[bytes]]


class _ScopedBody:
    """Response iterable whose iteration runs inside the request's logical execution."""

    def __init__(self, body: Iterable[bytes], handle: ExecutionHandle) -> None:
        self._body = body
        self._handle = handle

    def __iter__(self) -> Iterator[bytes]:
        iterator = self._handle.run(iter, self._body)
        while True:
            try:
                chunk = self._handle.run(next, iterator)
            except StopIteration:
                return
            yield chunk

    def close(self) -> None:
        close = getattr(self._body, "close", None)
        if close is not None:
            self._handle.run(close)


class RequestTracerWSGIMiddleware:
    """
    Bind every WSGI request to an id.

        app.wsgi_app = RequestTracerWSGIMiddleware(app.wsgi_app, use_header=True)
    """

    def __init__(
        self,
        app: WSGIApp,
        options: RequestTracerOptions | None = None,
        *,
        store: PropagationStore | None = None,
        **kwargs: Any,
    ) -> None:
        self.app = app
        self.options = build_options(options, **kwargs)
        self.store = store or get_store()

    def __call__(self, environ: dict[str, Any], start_response: Callable[..., Any]) -> Iterable[bytes]:
        opts = self.options
        request_id = resolve_request_id(environ, environ, opts)
        logger.debug("Request id resolved: %s", request_id)

        def _start_response(status: str, headers: list[tuple[str, str]], exc_info: Any = None) -> Any:
            if opts.echo_header:
                name = opts.header_name.lower()
                headers = [(k, v) for k, v in headers if k.lower() != name]
                headers.append((opts.header_name, str(request_id)))
            return start_response(status, headers, exc_info)

        def _call() -> _ScopedBody:
            handle = ExecutionHandle.capture()
            return _ScopedBody(self.app(environ, _start_response), handle)

        return self.store.run(request_id, _call)
