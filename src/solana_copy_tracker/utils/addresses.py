"""Helpers for validating Solana account and mint addresses."""

from __future__ import annotations

from solders.pubkey import Pubkey


def is_valid_pubkey(value: str) -> bool:
    try:
        Pubkey.from_string(value)
    except ValueError:
        return False
    return True


def normalize_pubkey(value: str) -> str:
    """Return the canonical base58 form of ``value`` or raise ``ValueError``."""

    candidate = value.strip()
    try:
        return str(Pubkey.from_string(candidate))
    except ValueError as exc:
        raise ValueError(f"Invalid Solana address: {value!r}") from exc


__all__ = ["is_valid_pubkey", "normalize_pubkey"]
