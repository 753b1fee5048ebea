"""
Adapter configuration schema (Pydantic v2).

Every framework adapter accepts the same four options. Keeping them in one
validated model means a typo'd or empty header name fails when the middleware is
constructed, not on the first request.

Environment overrides
---------------------
`RequestTracerOptions.from_env()` reads:
- RTRACER_USE_HEADER   (1/true/yes/y/on)
- RTRACER_HEADER_NAME  (default "X-Request-Id")
- RTRACER_ECHO_HEADER  (1/true/yes/y/on)
"""

from __future__ import annotations

import os
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_HEADER_NAME = "X-Request-Id"


def _is_truthy(value: str | None) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes", "y", "on"}


class RequestTracerOptions(BaseModel):
    """How an adapter resolves, binds and echoes the request id."""

    model_config = ConfigDict(frozen=True)

    use_header: bool = Field(
        default=False,
        description="Take the id from the inbound request header instead of generating one.",
    )
    header_name: str = Field(
        default=DEFAULT_HEADER_NAME,
        min_length=1,
        description="Header to read the id from (use_header) and to echo it under (echo_header).",
    )
    request_id_factory: Callable[[Any], Any] | None = Field(
        default=None,
        description="Called with the inbound request to derive an id. Defaults to a time-based UUID.",
    )
    echo_header: bool = Field(
        default=False,
        description="Write the resolved id back onto the response under header_name.",
    )

    @classmethod
    def from_env(cls, **overrides: Any) -> RequestTracerOptions:
        """Build options from RTRACER_* environment variables; keyword overrides win."""

        values: dict[str, Any] = {
            "use_header": _is_truthy(os.getenv("RTRACER_USE_HEADER")),
            "header_name": os.getenv("RTRACER_HEADER_NAME") or DEFAULT_HEADER_NAME,
            "echo_header": _is_truthy(os.getenv("RTRACER_ECHO_HEADER")),
        }
        values.update(overrides)
        return cls(**values)


def build_options(options: RequestTracerOptions | None = None, **kwargs: Any) -> RequestTracerOptions:
    """
    Normalize adapter arguments.

    Adapters accept either a ready `RequestTracerOptions` or its fields as keyword
    arguments (not both).
    """

    if options is not None:
        if kwargs:
            raise TypeError("Pass either an options object or keyword options, not both.")
        return options
    return RequestTracerOptions(**kwargs)
