"""
Process-wide request tracer.

This is the API applications (and the adapters) use:
- `current_id()`   read the request id from anywhere under a request
- `run_with_id()`  bind an id outside of any HTTP framework (jobs, scripts, consumers)
- `enter_with()`   bind/clear for lifecycle-hook frameworks

All of them go through one shared `PropagationStore`, so an id bound by any
adapter is visible to every reader in the process.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

from rtracer.emitter import is_emitter, wrap_emitter
from rtracer.ids import generate_id
from rtracer.store import ExecutionHandle, PropagationStore

R = TypeVar("R")

_store: PropagationStore[Any] = PropagationStore("rtracer")


def get_store() -> PropagationStore[Any]:
    return _store


def current_id() -> Any:
    """Return the current request id, or None outside of a request."""

    return _store.get()


def enter_with(request_id: Any) -> None:
    _store.enter_with(request_id)


def run_with_id(fn: Callable[..., R], request_id: Any = None, *args: Any, **kwargs: Any) -> R:
    """
    Run `fn` in scope of `request_id` (a fresh id when omitted).

    Async functions work too: `await run_with_id(handler, 42)`.
    """

    if request_id is None:
        request_id = generate_id()
    return _store.run(request_id, fn, *args, **kwargs)


def wrap_http_emitters(request: Any, response: Any, handle: ExecutionHandle | None = None) -> tuple[Any, Any]:
    """
    Rescope request/response emitters to the current logical execution.

    Both share one captured handle. Objects that are not emitters are returned
    unchanged.
    """

    if handle is None:
        handle = ExecutionHandle.capture()
    scoped = tuple(wrap_emitter(obj, handle) if is_emitter(obj) else obj for obj in (request, response))
    return scoped[0], scoped[1]
