"""Endpoints that report the request id as seen from different execution points."""

import asyncio

from fastapi import APIRouter, BackgroundTasks

from apps.api.correlation import fake_db_access, get_correlation_id

router = APIRouter(tags=["trace"])

# correlation ids observed by background tasks (inspected by tests)
BACKGROUND_SEEN: list = []


@router.get("/trace")
async def trace():
    """Return the id visible in the handler itself."""
    return {"id": get_correlation_id()}


@router.get("/trace/deferred")
async def trace_deferred():
    """
    Return ids seen after suspension points.

    - after an `await asyncio.sleep`
    - inside a timer callback (fake data access)
    - inside a child task
    """

    await asyncio.sleep(0)
    after_sleep = get_correlation_id()
    db_result = await fake_db_access()
    child = await asyncio.create_task(_read_in_child_task())

    return {
        "id": get_correlation_id(),
        "after_sleep": after_sleep,
        "timer": db_result["correlation_id"],
        "child_task": child,
    }


@router.post("/trace/background")
async def trace_background(background_tasks: BackgroundTasks):
    """Schedule work that runs after the response was sent."""
    background_tasks.add_task(_record_background_id)
    return {"id": get_correlation_id()}


async def _read_in_child_task():
    await asyncio.sleep(0)
    return get_correlation_id()


async def _record_background_id():
    BACKGROUND_SEEN.append(get_correlation_id())
