"""
rtracer: per-request correlation ids that follow async control flow.

    from rtracer import current_id, run_with_id

    async def handler():
        logger.info("handling %s", current_id())
"""

from rtracer.emitter import ScopedEmitter, wrap_emitter
from rtracer.ids import generate_id, resolve_request_id
from rtracer.schemas.options import RequestTracerOptions
from rtracer.store import ExecutionHandle, PropagationStore
from rtracer.tracer import current_id, enter_with, get_store, run_with_id, wrap_http_emitters

__all__ = [
    "ExecutionHandle",
    "PropagationStore",
    "RequestTracerOptions",
    "ScopedEmitter",
    "current_id",
    "enter_with",
    "generate_id",
    "get_store",
    "resolve_request_id",
    "run_with_id",
    "wrap_emitter",
    "wrap_http_emitters",
]
