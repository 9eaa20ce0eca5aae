"""Monitoring package exports and helpers."""

from __future__ import annotations

from typing import Optional

from ..config.settings import AppConfig, get_app_config
from .logger import configure_logging, get_logger, swap_scope
from .metrics import METRICS, MetricsRegistry


def bootstrap_observability(config: Optional[AppConfig] = None) -> MetricsRegistry:
    """Configure structured logging and hand back the process metrics registry."""

    app_config = config or get_app_config()
    configure_logging(app_config.monitoring)
    return METRICS


__all__ = ["bootstrap_observability", "get_logger", "swap_scope", "METRICS"]
