import json
import logging
import os
import time
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from starlette.requests import Request
from starlette.responses import Response

from apps.api.correlation import get_correlation_id
from apps.api.routes.health import router as health_router
from apps.api.routes.trace import router as trace_router
from rtracer.adapters import RequestTracerMiddleware
from rtracer.log_filter import configure_logging
from rtracer.schemas.options import RequestTracerOptions

# Load environment variables from .env file (if it exists)
# This allows RTRACER_USE_HEADER, RTRACER_ECHO_HEADER, etc. to be set in .env
env_path = Path(__file__).parent.parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

# Logger for request-level structured logs.
# The filter stamps every record with the current request id.
configure_logging(os.getenv("LOG_LEVEL", "INFO"))
logger = logging.getLogger("rtracer_demo.api")


def create_app(options: RequestTracerOptions | None = None) -> FastAPI:
    """
    Build the demo application.

    Middleware order matters: Starlette runs the middleware added last first, so
    the tracer is added after the request logger to wrap it.
    """

    if options is None:
        options = RequestTracerOptions.from_env(echo_header=True)

    app = FastAPI(title="rtracer demo")

    # Middleware: one structured log line per request, tagged with the request id.
    @app.middleware("http")
    async def request_log_middleware(request: Request, call_next) -> Response:
        start = time.perf_counter()
        try:
            response: Response = await call_next(request)
        except Exception:
            logger.exception(
                json.dumps({"event": "http_request_failed", "method": request.method, "path": request.url.path})
            )
            raise
        duration_ms = (time.perf_counter() - start) * 1000.0

        # Structured log line (JSON string) so it is easy to parse in log tools.
        logger.info(
            json.dumps(
                {
                    "event": "http_request",
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": round(duration_ms, 2),
                    "request_id": str(get_correlation_id()),
                }
            )
        )
        return response

    app.add_middleware(RequestTracerMiddleware, options=options)

    app.include_router(health_router)
    app.include_router(trace_router)
    return app


app = create_app()
