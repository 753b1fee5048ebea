"""
Generator-style adapter: bind before continuing, clear on every exit path.

    with request_scope(request, use_header=True) as request_id:
        handle(request)

This is the shape of yield-driven middleware, expressed as a context manager.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any

from rtracer.ids import resolve_request_id
from rtracer.schemas.options import RequestTracerOptions, build_options
from rtracer.store import PropagationStore
from rtracer.tracer import get_store


@contextmanager
def request_scope(
    request: Any = None,
    options: RequestTracerOptions | None = None,
    *,
    headers: Mapping[str, Any] | None = None,
    store: PropagationStore | None = None,
    **kwargs: Any,
) -> Iterator[Any]:
    """
    Bind a request id to the current logical execution for the `with` block.

    Headers come from `headers` when given, otherwise from `request.headers`.
    On exit (normal or exceptional) the value is cleared, not restored.
    """

    opts = build_options(options, **kwargs)
    target = store or get_store()
    if headers is None:
        headers = getattr(request, "headers", None)

    request_id = resolve_request_id(request, headers, opts)
    target.enter_with(request_id)
    try:
        yield request_id
    finally:
        target.enter_with(None)
