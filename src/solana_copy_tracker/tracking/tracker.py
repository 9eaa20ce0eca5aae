"""Facade bundling classification, sizing and balance estimation."""

from __future__ import annotations

from ..config.settings import TrackingConfig, get_app_config
from ..datalake.schemas import (
    SwapClassification,
    SwapRecord,
    TrackingOutcome,
    TradeAmount,
)
from ..datalake.storage import SwapRepository
from .balances import BalanceEstimator
from .classifier import SwapClassifier
from .sizing import TradeSizer


class PositionTracker:
    """Tracks token positions and sizes ratio-based copy trades."""

    def __init__(self, store: SwapRepository, config: TrackingConfig | None = None) -> None:
        self._config = config or get_app_config().tracking
        self.classifier = SwapClassifier(store, self._config)
        self.sizer = TradeSizer(store, self._config)
        self.balances = BalanceEstimator(store, self._config)

    @property
    def config(self) -> TrackingConfig:
        return self._config

    def detect_swap_type_outcome(self, swap: SwapRecord, wallet_address: str) -> TrackingOutcome[SwapClassification]:
        return self.classifier.classify(swap, wallet_address)

    def calculate_trade_amount_outcome(
        self,
        swap: SwapRecord,
        classification: SwapClassification,
    ) -> TrackingOutcome[TradeAmount]:
        return self.sizer.compute_amount(swap, classification)

    def get_token_balance_outcome(self, wallet_address: str, token_address: str) -> TrackingOutcome[str]:
        return self.balances.estimate_balance(wallet_address, token_address)

    def detect_swap_type(self, swap: SwapRecord, wallet_address: str) -> SwapClassification:
        return self.detect_swap_type_outcome(swap, wallet_address).value

    def calculate_trade_amount(self, swap: SwapRecord, classification: SwapClassification) -> TradeAmount:
        return self.calculate_trade_amount_outcome(swap, classification).value

    def get_token_balance(self, wallet_address: str, token_address: str) -> str:
        return self.get_token_balance_outcome(wallet_address, token_address).value

    def mirror(self, swap: SwapRecord, wallet_address: str) -> tuple[TrackingOutcome[SwapClassification], TrackingOutcome[TradeAmount]]:
        """Classify ``swap`` and size the bot's response in one call."""

        classification = self.detect_swap_type_outcome(swap, wallet_address)
        return classification, self.calculate_trade_amount_outcome(swap, classification.value)


__all__ = ["PositionTracker"]
