"""JSON logging tagged with the swap currently being tracked."""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Mapping, Optional

from ..config.settings import MonitoringConfig, get_app_config

_SWAP_CONTEXT: ContextVar[Mapping[str, str]] = ContextVar("swap_context", default={})
_CONTEXT_KEYS = ("tx", "wallet")
_RESERVED = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime", *_CONTEXT_KEYS}

_handler: Optional[logging.Handler] = None


class _SwapContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        context = _SWAP_CONTEXT.get()
        for key in _CONTEXT_KEYS:
            if not hasattr(record, key):
                setattr(record, key, context.get(key))
        return True


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line; ``extra=`` keys land under ``fields``."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in _CONTEXT_KEYS:
            value = getattr(record, key, None)
            if value:
                payload[key] = value
        fields = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED and not key.startswith("_")
        }
        if fields:
            payload["fields"] = fields
        if record.exc_info:
            payload["error"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(config: Optional[MonitoringConfig] = None) -> None:
    """Install the JSON handler on the root logger once per process.

    Logs go to stderr; stdout is reserved for command results.
    """

    global _handler
    cfg = config or get_app_config().monitoring
    root = logging.getLogger()
    root.setLevel(getattr(logging, cfg.log_level.upper(), logging.INFO))
    if _handler is not None:
        return
    _handler = logging.StreamHandler(sys.stderr)
    _handler.setFormatter(JsonLogFormatter())
    _handler.addFilter(_SwapContextFilter())
    root.handlers.clear()
    root.addHandler(_handler)
    logging.captureWarnings(True)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def current_swap_context() -> Dict[str, str]:
    return dict(_SWAP_CONTEXT.get())


@contextmanager
def swap_scope(tx: Optional[str] = None, wallet: Optional[str] = None) -> Iterator[None]:
    """Tag log records emitted inside the block with a transaction and wallet.

    Unset values are inherited from an enclosing scope.
    """

    context = dict(_SWAP_CONTEXT.get())
    if tx:
        context["tx"] = tx
    if wallet:
        context["wallet"] = wallet
    token = _SWAP_CONTEXT.set(context)
    try:
        yield
    finally:
        _SWAP_CONTEXT.reset(token)


__all__ = [
    "JsonLogFormatter",
    "configure_logging",
    "current_swap_context",
    "get_logger",
    "swap_scope",
]
