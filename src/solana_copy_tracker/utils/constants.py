"""Shared constants for Solana swap tracking."""

from datetime import datetime, timezone

def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)

SOLANA_CHAIN = "solana"

SOL_SYMBOL = "SOL"
SOL_MINT = "So11111111111111111111111111111111111111112"

DEFAULT_FIXED_ENTRY_AMOUNT = "0.07"

# Status codes that make an entry swap eligible for exit matching.
ELIGIBLE_ENTRY_STATUSES: tuple[str, ...] = ("completed", "submitted")

__all__ = [
    "utc_now",
    "SOLANA_CHAIN",
    "SOL_SYMBOL",
    "SOL_MINT",
    "DEFAULT_FIXED_ENTRY_AMOUNT",
    "ELIGIBLE_ENTRY_STATUSES",
]
