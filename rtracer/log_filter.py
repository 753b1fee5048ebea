"""
Logging integration.

`RequestIdFilter` stamps every log record with the current request id, so a
format string (or a JSON formatter) can include `%(request_id)s` without any
call site passing the id explicitly.
"""

from __future__ import annotations

import logging
import sys

from rtracer.store import PropagationStore
from rtracer.tracer import get_store

DEFAULT_FORMAT = "%(levelname)s:%(name)s:%(request_id)s:%(message)s"


class RequestIdFilter(logging.Filter):
    """Add `request_id` to log records (never filters anything out)."""

    def __init__(
        self,
        store: PropagationStore | None = None,
        *,
        attribute: str = "request_id",
        default: str = "-",
    ) -> None:
        super().__init__()
        self.store = store or get_store()
        self.attribute = attribute
        self.default = default

    def filter(self, record: logging.LogRecord) -> bool:
        value = self.store.get()
        setattr(record, self.attribute, self.default if value is None else value)
        return True


def configure_logging(level: str = "INFO", fmt: str = DEFAULT_FORMAT) -> logging.Handler:
    """Install a stdout handler on the root logger that includes the request id."""

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        if getattr(handler, "_rtracer", False):
            root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(fmt))
    handler.addFilter(RequestIdFilter())
    handler._rtracer = True  # type: ignore[attr-defined]
    root_logger.addHandler(handler)
    return handler
