"""
Request correlation ID utilities for the demo API.

What is a correlation ID?
------------------------
A correlation ID is a unique identifier attached to a request.
It helps you trace a single request through:
- API logs
- background work started by the request
- downstream calls (in a larger architecture)

Implementation approach
-----------------------
The id lives in the process-wide `rtracer` store. The tracer middleware binds it
for the whole request, including tasks, timers and callbacks the handlers
schedule, so:
- route handlers don't need to pass the correlation id everywhere manually
- deeper layers (like the fake data access helper below) can still read it safely
"""

from __future__ import annotations

import asyncio
from typing import Any

from rtracer import current_id


def get_correlation_id() -> Any:
    """Get the correlation_id for the current request context (or None)."""

    return current_id()


async def fake_db_access(delay: float = 0.01) -> dict[str, Any]:
    """
    Simulate a driver that completes I/O through a timer callback.

    The callback fires after the handler suspended, on the event loop, and still
    sees the request's correlation id.
    """

    loop = asyncio.get_running_loop()
    done: asyncio.Future[dict[str, Any]] = loop.create_future()

    def _complete() -> None:
        done.set_result({"correlation_id": get_correlation_id()})

    loop.call_later(delay, _complete)
    return await done
