"""Entry/exit detection for swaps made by tracked wallets."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from ..config.settings import TrackingConfig, get_app_config
from ..datalake.schemas import (
    ENTRY_CLASSIFICATION,
    FallbackReason,
    SwapClassification,
    SwapRecord,
    SwapType,
    TrackingOutcome,
)
from ..datalake.storage import SwapRepository
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS

_METRIC_PREFIX = "tracking.classifier"


def _usd(value: Optional[float]) -> Decimal:
    if not value:
        return Decimal(0)
    return Decimal(repr(float(value)))


class SwapClassifier:
    """Decides whether a swap opens a new position or closes a mirrored one.

    A swap is an exit when the wallet previously entered the token it is now
    disposing of, i.e. an earlier processed entry bought ``swap.token_in``.
    The most recent such entry is the one being closed, and the exit ratio is
    the share of that entry's USD value realised by this swap.
    """

    def __init__(self, store: SwapRepository, config: TrackingConfig | None = None) -> None:
        self._store = store
        self._config = config or get_app_config().tracking
        self._logger = get_logger(__name__)

    def classify(self, swap: SwapRecord, wallet_address: str) -> TrackingOutcome[SwapClassification]:
        try:
            disposed_token = swap.token_in.address
        except AttributeError:
            self._logger.exception("Swap without a disposed token; defaulting to entry")
            return self._fallback(FallbackReason.COMPUTATION_FAILED)

        try:
            with METRICS.timer(f"{_METRIC_PREFIX}.query_seconds"):
                candidates = self._store.find_entry_candidates(
                    wallet_address,
                    self._config.chain,
                    disposed_token,
                    self._config.eligible_statuses,
                )
        except Exception:  # noqa: BLE001
            self._logger.exception("Entry lookup failed for wallet %s; defaulting to entry", wallet_address)
            return self._fallback(FallbackReason.QUERY_FAILED)

        METRICS.gauge(f"{_METRIC_PREFIX}.entry_candidates", len(candidates))
        if not candidates:
            METRICS.increment(f"{_METRIC_PREFIX}.entry")
            return TrackingOutcome(ENTRY_CLASSIFICATION)

        related = candidates[0]
        try:
            entry_usd = _usd(related.usd_value)
            exit_usd = _usd(swap.usd_value)
            exit_ratio = exit_usd / entry_usd if entry_usd > 0 else Decimal(1)
        except (ArithmeticError, TypeError, ValueError):
            self._logger.exception("Could not compute exit ratio against entry %s", related.swap_id)
            return self._fallback(FallbackReason.COMPUTATION_FAILED)

        METRICS.increment(f"{_METRIC_PREFIX}.exit")
        self._logger.info(
            "Swap by %s closes entry %s (ratio %s)",
            wallet_address,
            related.swap_id,
            exit_ratio,
            extra={"token": disposed_token, "candidates": len(candidates)},
        )
        return TrackingOutcome(
            SwapClassification(
                swap_type=SwapType.EXIT,
                related_entry_swap_id=related.swap_id,
                exit_ratio=exit_ratio,
            )
        )

    def _fallback(self, reason: FallbackReason) -> TrackingOutcome[SwapClassification]:
        METRICS.increment(f"{_METRIC_PREFIX}.fallback.{reason.value}")
        return TrackingOutcome(ENTRY_CLASSIFICATION, fallback_reason=reason)


__all__ = ["SwapClassifier"]
