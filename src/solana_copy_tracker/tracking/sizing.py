"""Copy-trade sizing under the fixed SOL allocation policy."""

from __future__ import annotations

from decimal import Decimal

from ..config.settings import TrackingConfig, get_app_config
from ..datalake.schemas import (
    FallbackReason,
    SwapClassification,
    SwapRecord,
    SwapType,
    TrackingOutcome,
    TradeAmount,
    format_amount,
    parse_amount,
)
from ..datalake.storage import SwapRepository
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS

_METRIC_PREFIX = "tracking.sizer"


class TradeSizer:
    """Computes the amount the bot trades when mirroring a swap.

    Entries commit ``fixed_entry_amount`` SOL (or its token equivalent at the
    observed swap's rate). Exits unwind the SOL the bot committed to the
    related entry, scaled by the classification's exit ratio. Every failure
    path mirrors the observed swap's input leg unchanged.
    """

    def __init__(self, store: SwapRepository, config: TrackingConfig | None = None) -> None:
        self._store = store
        self._config = config or get_app_config().tracking
        self._logger = get_logger(__name__)

    @property
    def fixed_amount(self) -> Decimal:
        return parse_amount(self._config.fixed_entry_amount)

    def is_native(self, symbol: str, address: str) -> bool:
        return symbol == self._config.native_symbol or address == self._config.native_mint

    def compute_amount(
        self,
        swap: SwapRecord,
        classification: SwapClassification,
    ) -> TrackingOutcome[TradeAmount]:
        try:
            swap_type = SwapType(classification.swap_type)
        except (AttributeError, TypeError, ValueError):
            self._logger.exception("Unusable classification %r", classification)
            outcome = self._mirror(swap, FallbackReason.COMPUTATION_FAILED)
        else:
            if swap_type is SwapType.ENTRY:
                outcome = self._entry_amount(swap)
            else:
                outcome = self._exit_amount(swap, classification)
        if outcome.degraded:
            METRICS.increment(f"{_METRIC_PREFIX}.fallback.{outcome.fallback_reason.value}")
        else:
            METRICS.increment(f"{_METRIC_PREFIX}.{swap_type.value}")
        return outcome

    def _entry_amount(self, swap: SwapRecord) -> TrackingOutcome[TradeAmount]:
        try:
            token_in = swap.token_in
            if self.is_native(token_in.symbol, token_in.address):
                return TrackingOutcome(
                    TradeAmount(amount=self._config.fixed_entry_amount, token_address=token_in.address)
                )
            native_leg = swap.token_out.quantity
            if native_leg <= 0:
                self._logger.warning(
                    "Swap %s has no native leg to price against; mirroring original amount",
                    swap.source_tx_hash or swap.swap_id,
                )
                return self._mirror(swap, FallbackReason.NON_POSITIVE_NATIVE_LEG)
            tokens_per_native = token_in.quantity / native_leg
            amount = self.fixed_amount * tokens_per_native
        except (ArithmeticError, AttributeError, TypeError, ValueError):
            self._logger.exception("Error calculating entry amount")
            return self._mirror(swap, FallbackReason.COMPUTATION_FAILED)
        return TrackingOutcome(TradeAmount(amount=format_amount(amount), token_address=token_in.address))

    def _exit_amount(
        self,
        swap: SwapRecord,
        classification: SwapClassification,
    ) -> TrackingOutcome[TradeAmount]:
        entry_id = classification.related_entry_swap_id
        if entry_id is None:
            self._logger.warning("Exit classification without a related entry; using original amount")
            return self._mirror(swap, FallbackReason.ENTRY_NOT_FOUND)
        try:
            related_entry = self._store.get_swap(entry_id)
        except Exception:  # noqa: BLE001
            self._logger.exception("Error loading related entry swap %s", entry_id)
            return self._mirror(swap, FallbackReason.QUERY_FAILED)
        if related_entry is None:
            self._logger.warning("Could not find related entry swap %s, using original amount", entry_id)
            return self._mirror(swap, FallbackReason.ENTRY_NOT_FOUND)

        try:
            position_value = (
                parse_amount(related_entry.my_position_value)
                if related_entry.my_position_value
                else self.fixed_amount
            )
            ratio = Decimal(1) if classification.exit_ratio is None else parse_amount(classification.exit_ratio)
            amount = position_value * ratio
            token_address = swap.token_in.address
        except (ArithmeticError, AttributeError, TypeError, ValueError):
            self._logger.exception("Error calculating exit amount for entry %s", entry_id)
            return self._mirror(swap, FallbackReason.COMPUTATION_FAILED)
        return TrackingOutcome(TradeAmount(amount=format_amount(amount), token_address=token_address))

    def _mirror(self, swap: SwapRecord, reason: FallbackReason) -> TrackingOutcome[TradeAmount]:
        token_in = getattr(swap, "token_in", None)
        amount = getattr(token_in, "amount", "0")
        address = getattr(token_in, "address", "")
        return TrackingOutcome(TradeAmount(amount=str(amount), token_address=str(address)), fallback_reason=reason)


__all__ = ["TradeSizer"]
