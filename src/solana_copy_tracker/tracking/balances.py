"""Best-effort token balance estimates replayed from recorded swaps."""

from __future__ import annotations

from decimal import Decimal

from ..config.settings import TrackingConfig, get_app_config
from ..datalake.schemas import FallbackReason, TrackingOutcome, format_amount
from ..datalake.storage import SwapRepository
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS

_METRIC_PREFIX = "tracking.balance"


class BalanceEstimator:
    """Replays a wallet's recorded swaps of one token, oldest first.

    Only swaps present in the store are counted; transfers and swaps the
    ingestion pipeline never saw are invisible, so this is not a ledger.
    """

    def __init__(self, store: SwapRepository, config: TrackingConfig | None = None) -> None:
        self._store = store
        self._config = config or get_app_config().tracking
        self._logger = get_logger(__name__)

    def estimate_balance(self, wallet_address: str, token_address: str) -> TrackingOutcome[str]:
        try:
            swaps = self._store.list_swaps_for_token(wallet_address, self._config.chain, token_address)
        except Exception:  # noqa: BLE001
            self._logger.exception("Error loading swaps for %s/%s", wallet_address, token_address)
            return self._fallback(FallbackReason.QUERY_FAILED)

        balance = Decimal(0)
        try:
            for swap in swaps:
                if swap.token_out.address == token_address:
                    balance += swap.token_out.quantity
                elif swap.token_in.address == token_address:
                    balance -= swap.token_in.quantity
        except (ArithmeticError, AttributeError, TypeError, ValueError):
            self._logger.exception("Error calculating token balance for %s/%s", wallet_address, token_address)
            return self._fallback(FallbackReason.COMPUTATION_FAILED)

        if balance < 0:
            self._logger.debug(
                "Recorded disposals exceed acquisitions for %s/%s; clamping to zero",
                wallet_address,
                token_address,
            )
        METRICS.increment(f"{_METRIC_PREFIX}.estimated")
        return TrackingOutcome(format_amount(max(balance, Decimal(0))))

    def _fallback(self, reason: FallbackReason) -> TrackingOutcome[str]:
        METRICS.increment(f"{_METRIC_PREFIX}.fallback.{reason.value}")
        return TrackingOutcome("0", fallback_reason=reason)


__all__ = ["BalanceEstimator"]
