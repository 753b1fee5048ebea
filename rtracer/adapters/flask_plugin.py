"""
Flask extension (lifecycle-hook style).

Flask does not give middleware a single call to wrap around a request; it emits
separate lifecycle hooks instead. The extension therefore uses enter/clear:

- before_request:    resolve the id, keep it in `flask.g`, `enter_with(id)`
- after_request:     echo the id onto the response (optional)
- teardown_request:  drop the stored state, `enter_with(None)`

teardown_request runs even when the view raised, so the id never leaks into
whatever the worker thread handles next.

    tracer = FlaskRequestTracer(app, echo_header=True)
    # or, with an application factory:
    tracer = FlaskRequestTracer(use_header=True)
    tracer.init_app(app)
"""

from __future__ import annotations

import logging
from typing import Any

from flask import Flask, Response, g, request

from rtracer.ids import resolve_request_id
from rtracer.schemas.options import RequestTracerOptions, build_options
from rtracer.store import PropagationStore
from rtracer.tracer import get_store

logger = logging.getLogger(__name__)

EXTENSION_NAME = "rtracer"


class FlaskRequestTracer:
    name = EXTENSION_NAME

    def __init__(
        self,
        app: Flask | None = None,
        options: RequestTracerOptions | None = None,
        *,
        store: PropagationStore | None = None,
        **kwargs: Any,
    ) -> None:
        self.options = build_options(options, **kwargs)
        self.store = store or get_store()
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        app.before_request(self._on_request)
        app.after_request(self._on_response)
        app.teardown_request(self._on_teardown)
        app.extensions[self.name] = self

    def _on_request(self) -> None:
        request_id = resolve_request_id(request, request.headers, self.options)
        # Plugin-scoped per-request storage.
        setattr(g, self.name, {"request_id": request_id})
        self.store.enter_with(request_id)
        logger.debug("Request id resolved: %s", request_id)

    def _on_response(self, response: Response) -> Response:
        state = g.get(self.name)
        if self.options.echo_header and state is not None:
            response.headers[self.options.header_name] = str(state["request_id"])
        return response

    def _on_teardown(self, exc: BaseException | None) -> None:
        g.pop(self.name, None)
        self.store.enter_with(None)
