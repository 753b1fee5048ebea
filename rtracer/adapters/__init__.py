"""
Framework adapters.

One module per handler shape:
- callback: `(request, response, call_next)` handlers
- wsgi:     WSGI middleware
- asgi:     Starlette / FastAPI middleware
- scope:    `with request_scope(...)` blocks
- flask_plugin: Flask extension (import it directly; Flask is an optional extra)
"""

from rtracer.adapters.asgi import RequestTracerMiddleware, request_tracer_http_middleware
from rtracer.adapters.callback import callback_middleware
from rtracer.adapters.scope import request_scope
from rtracer.adapters.wsgi import RequestTracerWSGIMiddleware

__all__ = [
    "RequestTracerMiddleware",
    "RequestTracerWSGIMiddleware",
    "callback_middleware",
    "request_scope",
    "request_tracer_http_middleware",
]
