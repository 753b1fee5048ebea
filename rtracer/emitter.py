"""
Emitter rescoper.

Why this exists
---------------
Some events fire long after the request handler returned: a connection's
"close", a request body's "end", a response's "finish". By then the logical
execution that handled the request is gone, so a listener reading the request
id would see None (or, worse, whatever the emitting code happens to be bound to).

The fix is per-listener rescoping: every listener registered through a
`ScopedEmitter` is substituted with a function that re-enters the logical
execution captured when the emitter was wrapped, then calls the original.

Design notes
------------
- The emitter object is never patched; `ScopedEmitter` is a wrapper exposing the
  same registration/removal/emit methods and delegating everything else.
- Bookkeeping (which substituted function belongs to which original listener)
  lives in a side-table keyed by emitter identity, so every view on the same
  emitter shares it and two emitters never do.
- The side-table only holds weak references to substituted listeners. The
  emitter owns them; the table never keeps an emitter alive.
- Listeners registered on the raw emitter before wrapping are not rescoped.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import weakref
from collections.abc import Callable
from typing import Any

from pyee import EventEmitter

from rtracer.store import ExecutionHandle

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]


class _EmitterState:
    """Per-emitter record: captured handle + event -> substituted listeners."""

    def __init__(self, handle: ExecutionHandle) -> None:
        self.handle = handle
        self.records: dict[Any, list[weakref.ref]] = {}

    def add(self, event: Any, wrapped: Listener) -> None:
        self.records.setdefault(event, []).append(weakref.ref(wrapped))

    def pop_latest(self, event: Any, original: Listener) -> Listener | None:
        """Detach the most recent live registration of `original` for `event`."""

        refs = self.records.get(event)
        if not refs:
            return None

        for index in range(len(refs) - 1, -1, -1):
            wrapped = refs[index]()
            if wrapped is not None and wrapped.__wrapped__ == original:
                del refs[index]
                self._compact(event)
                return wrapped
        return None

    def forget(self, event: Any, wrapped: Listener) -> None:
        refs = self.records.get(event)
        if not refs:
            return
        for index, ref in enumerate(refs):
            if ref() is wrapped:
                del refs[index]
                break
        self._compact(event)

    def _compact(self, event: Any) -> None:
        refs = [ref for ref in self.records.get(event, []) if ref() is not None]
        if refs:
            self.records[event] = refs
        else:
            self.records.pop(event, None)

    def original_of(self, event: Any, listener: Listener) -> Listener:
        for ref in self.records.get(event, []):
            if ref() is listener:
                return listener.__wrapped__
        return listener


# emitter -> _EmitterState
_STATES: weakref.WeakKeyDictionary = weakref.WeakKeyDictionary()


def is_emitter(obj: Any) -> bool:
    """True for pyee emitters and anything exposing the same listener methods."""

    if isinstance(obj, (EventEmitter, ScopedEmitter)):
        return True
    return all(callable(getattr(obj, name, None)) for name in ("on", "remove_listener", "emit"))


class ScopedEmitter:
    """
    Emitter view whose listeners run inside a captured logical execution.

    Create it with `wrap_emitter()`; constructing it directly skips the shared
    per-emitter bookkeeping.
    """

    def __init__(self, emitter: Any, state: _EmitterState) -> None:
        self._emitter = emitter
        self._state = state

    @property
    def wrapped_emitter(self) -> Any:
        return self._emitter

    @property
    def handle(self) -> ExecutionHandle:
        return self._state.handle

    def on(self, event: Any, f: Listener | None = None) -> Any:
        """Register `f` for `event`; without `f`, return a decorator (like pyee)."""

        if f is None:

            def _decorator(listener: Listener) -> Listener:
                self._register("on", event, listener)
                return listener

            return _decorator

        self._register("on", event, f)
        return f

    def add_listener(self, event: Any, f: Listener) -> None:
        self._register("add_listener", event, f)

    def once(self, event: Any, f: Listener | None = None) -> Any:
        if f is None:

            def _decorator(listener: Listener) -> Listener:
                self._register("once", event, listener, once=True)
                return listener

            return _decorator

        self._register("once", event, f, once=True)
        return f

    def listens_to(self, event: Any) -> Callable[[Listener], Listener]:
        """Decorator form of `on` (pyee's `listens_to`)."""

        def _decorator(listener: Listener) -> Listener:
            self._register("on", event, listener)
            return listener

        return _decorator

    def prepend_listener(self, event: Any, f: Listener) -> None:
        """Register `f` ahead of existing listeners, if the emitter supports it."""

        self._register("prepend_listener", event, f)

    def prepend_once_listener(self, event: Any, f: Listener) -> None:
        self._register("prepend_once_listener", event, f, once=True)

    def remove_listener(self, event: Any, f: Listener) -> None:
        """
        Remove one registration of `f` for `event`.

        Only the most recent matching registration is removed, so duplicates stay
        independent. Unknown, already-removed and already-fired `once` listeners
        are ignored, which makes redundant self-removal from inside a listener safe.
        """

        wrapped = self._state.pop_latest(event, f)
        if wrapped is None:
            return
        registered = getattr(self._emitter, "listeners", None)
        if registered is None or wrapped in registered(event):
            self._emitter.remove_listener(event, wrapped)

    off = remove_listener

    def remove_all_listeners(self, event: Any = None) -> None:
        if event is None:
            self._state.records.clear()
        else:
            self._state.records.pop(event, None)
        self._emitter.remove_all_listeners(event)

    def listeners(self, event: Any) -> list[Listener]:
        """Listeners for `event`, reported as originally registered."""

        return [self._state.original_of(event, f) for f in self._emitter.listeners(event)]

    def emit(self, event: Any, *args: Any, **kwargs: Any) -> Any:
        return self._emitter.emit(event, *args, **kwargs)

    def _register(self, method: str, event: Any, f: Listener, *, once: bool = False) -> None:
        # AttributeError here (emitter without `method`) leaves no bookkeeping behind
        register = getattr(self._emitter, method)
        handle = self._state.handle
        state = self._state

        @functools.wraps(f)
        def _scoped_listener(*args: Any, **kwargs: Any) -> Any:
            if once:
                state.forget(event, _scoped_listener)
            return handle.run(_call_listener, f, *args, **kwargs)

        state.add(event, _scoped_listener)
        register(event, _scoped_listener)

    def __getattr__(self, name: str) -> Any:
        if name == "_emitter":
            raise AttributeError(name)
        return getattr(self._emitter, name)

    def __repr__(self) -> str:
        return f"ScopedEmitter({self._emitter!r})"


def wrap_emitter(emitter: Any, handle: ExecutionHandle | None = None) -> ScopedEmitter:
    """
    Rescope listeners registered on `emitter` to a logical execution.

    `handle` defaults to the logical execution active right now. Wrapping is
    idempotent per emitter: a second call reuses the first call's handle and
    bookkeeping, and wrapping a `ScopedEmitter` returns it unchanged.
    """

    if isinstance(emitter, ScopedEmitter):
        return emitter

    state = _STATES.get(emitter)
    if state is None:
        state = _EmitterState(handle if handle is not None else ExecutionHandle.capture())
        _STATES[emitter] = state
        logger.debug("Wrapped emitter %r", emitter)
    return ScopedEmitter(emitter, state)


def _call_listener(f: Listener, *args: Any, **kwargs: Any) -> Any:
    # Async listeners: start the task here so it copies the rescoped context,
    # not the context of whoever emitted the event.
    result = f(*args, **kwargs)
    if not asyncio.iscoroutine(result):
        return result
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return result
    return loop.create_task(result)
