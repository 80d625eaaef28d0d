from __future__ import annotations

import contextvars
import logging
from contextlib import contextmanager
from typing import Iterator, Optional
from uuid import uuid4

MAX_DELIVERY_ID_CHARS = 64

_delivery_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "delivery_id", default="-"
)
_configured = False


class DeliveryIdFilter(logging.Filter):
    """Stamp each record with the delivery it was logged under."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "delivery_id"):
            record.delivery_id = _delivery_id_var.get()
        return True


def configure_logging(level: str = "INFO") -> None:
    global _configured
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    if _configured:
        return

    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s %(levelname)s [%(name)s] [delivery=%(delivery_id)s] %(message)s"
            )
        )
        root.addHandler(handler)
    delivery_filter = DeliveryIdFilter()
    for handler in root.handlers:
        handler.addFilter(delivery_filter)
    _configured = True


def resolve_delivery_id(header_value: Optional[str]) -> str:
    # Provider-supplied ids end up in every log line; keep them short and printable.
    candidate = (header_value or "").strip()
    if not candidate or not candidate.isprintable():
        return uuid4().hex
    return candidate[:MAX_DELIVERY_ID_CHARS]


@contextmanager
def delivery_scope(delivery_id: str) -> Iterator[str]:
    token = _delivery_id_var.set(delivery_id)
    try:
        yield delivery_id
    finally:
        _delivery_id_var.reset(token)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name)


def preview(value: Optional[str], limit: int = 100) -> str:
    if not value:
        return ""
    if len(value) <= limit:
        return value
    return value[:limit] + "..."
