"""Position tracking package exports."""

from .balances import BalanceEstimator
from .classifier import SwapClassifier
from .sizing import TradeSizer
from .tracker import PositionTracker

__all__ = [
    "BalanceEstimator",
    "PositionTracker",
    "SwapClassifier",
    "TradeSizer",
]
