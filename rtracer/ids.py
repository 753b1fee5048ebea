"""Request id generation and header-derived id resolution."""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from typing import Any

from rtracer.schemas.options import RequestTracerOptions


def generate_id() -> str:
    """Time-based unique id (UUID version 1)."""

    return str(uuid.uuid1())


def _default_factory(_request: Any) -> str:
    return generate_id()


def environ_key(header_name: str) -> str:
    """WSGI environ key for an HTTP header: X-Request-Id -> HTTP_X_REQUEST_ID."""

    return "HTTP_" + header_name.upper().replace("-", "_")


def header_value(headers: Mapping[str, Any] | None, name: str) -> Any:
    """
    Case-insensitive header lookup.

    Works for Starlette/Werkzeug header objects (already case-insensitive),
    plain dicts with lower-cased keys, dicts keyed exactly as sent, and WSGI
    environs.
    """

    if not headers:
        return None

    for key in (name, name.lower(), environ_key(name)):
        value = headers.get(key)
        if value is not None:
            return value

    lowered = name.lower()
    for key, value in headers.items():
        if isinstance(key, str) and key.lower() == lowered:
            return value
    return None


def resolve_request_id(request: Any, headers: Mapping[str, Any] | None, options: RequestTracerOptions) -> Any:
    """
    Decide the id for one inbound request.

    - use_header + non-empty header: the header value, verbatim (factory bypassed)
    - otherwise: request_id_factory(request), defaulting to `generate_id()`
    """

    if options.use_header:
        value = header_value(headers, options.header_name)
        if value:
            return value

    factory = options.request_id_factory or _default_factory
    return factory(request)
