"""
Propagation store: ambient values that follow a logical execution.

What is a logical execution?
----------------------------
One bound `run()` call plus everything causally descended from it:
- code called synchronously from it
- tasks it spawns
- timer callbacks (`loop.call_later`) it schedules
- future done-callbacks it registers
- coroutine continuations resumed after an `await`

Implementation approach
-----------------------
Python already threads an explicit "current execution context" through its
scheduler: `contextvars.Context`. asyncio copies the active context into every
Task, every `call_soon`/`call_later` handle and every done-callback. That is
exactly the continuation-local slot we need, so the store is a thin, narrow
interface (run / enter_with / get) over a single `ContextVar`.

Never cache a value read from the store across an `await`; always read it again.
"""

from __future__ import annotations

import asyncio
import contextvars
import inspect
import threading
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

T = TypeVar("T")
R = TypeVar("R")


class ExecutionHandle:
    """
    A captured logical execution that can be re-entered later.

    Handles are what the emitter rescoper stores: callbacks that fire long after
    the request handler returned are run "inside" the handle so the store reads
    the value that was bound at capture time.
    """

    def __init__(self, context: contextvars.Context | None = None) -> None:
        self._context = context if context is not None else contextvars.copy_context()
        self._lock = threading.Lock()

    @classmethod
    def capture(cls) -> ExecutionHandle:
        """Snapshot the logical execution active at the point of call."""

        return cls(contextvars.copy_context())

    def run(self, fn: Callable[..., R], *args: Any, **kwargs: Any) -> R:
        """
        Run `fn` with this handle's logical execution re-entered.

        A `Context` cannot be entered twice at the same time (listeners that emit
        other events on the same emitter do exactly that, and so do two threads
        running the same bound callable), so any entry made while the snapshot is
        already entered runs in a copy. The copy holds the same values.
        """

        if not self._lock.acquire(blocking=False):
            return self._context.copy().run(fn, *args, **kwargs)

        try:
            return self._context.run(fn, *args, **kwargs)
        finally:
            self._lock.release()

    def bind(self, fn: Callable[..., R]) -> Callable[..., R]:
        """Return a callable that always runs `fn` inside this handle."""

        def _bound(*args: Any, **kwargs: Any) -> R:
            return self.run(fn, *args, **kwargs)

        return _bound


class PropagationStore(Generic[T]):
    """
    Process-wide mapping from "logical execution" to the current value.

    `None` means "absent": reads outside any `run()`/`enter_with()` scope (or after
    the scope ended) return None, never a value left behind by another execution.
    """

    def __init__(self, name: str = "rtracer") -> None:
        self.name = name
        self._var: contextvars.ContextVar[T | None] = contextvars.ContextVar(name, default=None)

    def get(self) -> T | None:
        """Return the value bound to the current logical execution (or None)."""

        return self._var.get()

    def enter_with(self, value: T | None) -> contextvars.Token:
        """
        Set the value for the rest of the currently active logical execution.

        Used where a framework drives the request lifecycle through separate
        start/end hooks instead of a single call we could wrap.
        `enter_with(None)` clears the value.
        """

        return self._var.set(value)

    def run(self, value: T | None, fn: Callable[..., R], *args: Any, **kwargs: Any) -> R:
        """
        Run `fn(*args, **kwargs)` as a new logical execution bound to `value`.

        Sync callables run in a fresh copy of the current context, so everything
        they schedule (timers, tasks, done-callbacks) inherits the binding while
        the caller's own context is untouched.

        Coroutines returned by `fn` have not started yet; their body runs later,
        in the context of whoever awaits them. They are wrapped so the binding is
        re-established for their entire execution and the previous value is
        restored once they finish (or fail).
        """

        context = contextvars.copy_context()
        context.run(self._var.set, value)
        result = context.run(fn, *args, **kwargs)

        if inspect.isawaitable(result) and not isinstance(result, asyncio.Future):
            return self._bind_awaitable(value, result)  # type: ignore[return-value]
        return result

    async def _bind_awaitable(self, value: T | None, awaitable: Awaitable[R]) -> R:
        token = self._var.set(value)
        try:
            return await awaitable
        finally:
            self._var.reset(token)

    def capture(self) -> ExecutionHandle:
        return ExecutionHandle.capture()

    def __repr__(self) -> str:
        return f"PropagationStore(name={self.name!r})"
