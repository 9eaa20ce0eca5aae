from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Tuple

import pytest

from solana_copy_tracker.config.settings import TrackingConfig
from solana_copy_tracker.datalake.schemas import SwapRecord, TokenTransfer
from solana_copy_tracker.datalake.storage import SQLiteSwapStore
from solana_copy_tracker.monitoring.metrics import METRICS

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _reset_metrics():
    METRICS.reset()
    yield
    METRICS.reset()


@pytest.fixture
def store(tmp_path) -> SQLiteSwapStore:
    return SQLiteSwapStore(tmp_path / "swaps.sqlite3")


@pytest.fixture
def tracking_config() -> TrackingConfig:
    return TrackingConfig()


@pytest.fixture
def make_swap() -> Callable[..., SwapRecord]:
    """Build a swap from ``(address, symbol, amount)`` legs, offset in minutes from a fixed base time."""

    def _make(
        token_in: Tuple[str, str, str],
        token_out: Tuple[str, str, str],
        *,
        minutes: int = 0,
        **kwargs,
    ) -> SwapRecord:
        kwargs.setdefault("source_timestamp", BASE_TIME + timedelta(minutes=minutes))
        return SwapRecord(
            token_in=TokenTransfer(*token_in),
            token_out=TokenTransfer(*token_out),
            **kwargs,
        )

    return _make
