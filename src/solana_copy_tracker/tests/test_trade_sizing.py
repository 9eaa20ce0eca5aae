from __future__ import annotations

from decimal import Decimal

from solana_copy_tracker.config.settings import TrackingConfig
from solana_copy_tracker.datalake.schemas import (
    ENTRY_CLASSIFICATION,
    FallbackReason,
    SwapClassification,
    SwapStatus,
    SwapType,
)
from solana_copy_tracker.monitoring.metrics import METRICS
from solana_copy_tracker.tracking.sizing import TradeSizer
from solana_copy_tracker.utils.constants import SOL_MINT

WALLET = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
TOKEN = "MintTkn1111111111111111111111111111111111"


class LookupFailingStore:
    def get_swap(self, swap_id):
        raise RuntimeError("connection reset")


def _exit(entry_id, ratio):
    return SwapClassification(swap_type=SwapType.EXIT, related_entry_swap_id=entry_id, exit_ratio=ratio)


def _stored_entry(store, make_swap, **kwargs):
    return store.record_swap(
        make_swap(
            (SOL_MINT, "SOL", "0.07"),
            (TOKEN, "TKN", "700"),
            source_wallet=WALLET,
            usd_value=10.0,
            processed=True,
            status_code=SwapStatus.COMPLETED,
            **kwargs,
        )
    )


def test_native_entry_uses_fixed_amount(store, make_swap, tracking_config) -> None:
    sizer = TradeSizer(store, tracking_config)
    swap = make_swap((SOL_MINT, "SOL", "1.5"), (TOKEN, "TKN", "15000"))

    outcome = sizer.compute_amount(swap, ENTRY_CLASSIFICATION)

    assert outcome.value.amount == "0.07"
    assert outcome.value.token_address == SOL_MINT
    assert not outcome.degraded
    assert METRICS.get("tracking.sizer.entry") == 1


def test_native_entry_detected_by_mint_address(store, make_swap, tracking_config) -> None:
    sizer = TradeSizer(store, tracking_config)
    swap = make_swap((SOL_MINT, "WSOL", "2"), (TOKEN, "TKN", "100"))

    outcome = sizer.compute_amount(swap, ENTRY_CLASSIFICATION)

    assert outcome.value.amount == "0.07"


def test_native_entry_respects_configured_amount(store, make_swap) -> None:
    sizer = TradeSizer(store, TrackingConfig(fixed_entry_amount="0.25"))
    swap = make_swap((SOL_MINT, "SOL", "1"), (TOKEN, "TKN", "10"))

    outcome = sizer.compute_amount(swap, ENTRY_CLASSIFICATION)

    assert outcome.value.amount == "0.25"


def test_token_entry_scales_fixed_amount_by_observed_rate(store, make_swap, tracking_config) -> None:
    sizer = TradeSizer(store, tracking_config)
    swap = make_swap((TOKEN, "TKN", "350"), (SOL_MINT, "SOL", "0.035"))

    outcome = sizer.compute_amount(swap, ENTRY_CLASSIFICATION)

    assert Decimal(outcome.value.amount) == Decimal("0.07") * (Decimal("350") / Decimal("0.035"))
    assert outcome.value.amount == "700"
    assert outcome.value.token_address == TOKEN
    assert not outcome.degraded


def test_token_entry_without_native_leg_mirrors_original(store, make_swap, tracking_config) -> None:
    sizer = TradeSizer(store, tracking_config)
    swap = make_swap((TOKEN, "TKN", "350"), (SOL_MINT, "SOL", "0"))

    outcome = sizer.compute_amount(swap, ENTRY_CLASSIFICATION)

    assert outcome.value.amount == "350"
    assert outcome.value.token_address == TOKEN
    assert outcome.fallback_reason is FallbackReason.NON_POSITIVE_NATIVE_LEG
    assert METRICS.get("tracking.sizer.fallback.non_positive_native_leg") == 1


def test_exit_defaults_position_value_to_fixed_amount(store, make_swap, tracking_config) -> None:
    entry = _stored_entry(store, make_swap)
    sizer = TradeSizer(store, tracking_config)
    swap = make_swap((TOKEN, "TKN", "350"), (SOL_MINT, "SOL", "0.042"))

    outcome = sizer.compute_amount(swap, _exit(entry.swap_id, Decimal("0.6")))

    assert outcome.value.amount == "0.042"
    assert outcome.value.token_address == TOKEN
    assert not outcome.degraded


def test_exit_scales_recorded_position_value(store, make_swap, tracking_config) -> None:
    entry = _stored_entry(store, make_swap, my_position_value="0.2")
    sizer = TradeSizer(store, tracking_config)
    swap = make_swap((TOKEN, "TKN", "350"), (SOL_MINT, "SOL", "0.042"))

    outcome = sizer.compute_amount(swap, _exit(entry.swap_id, Decimal("0.5")))

    assert outcome.value.amount == "0.1"


def test_exit_without_ratio_closes_whole_position(store, make_swap, tracking_config) -> None:
    entry = _stored_entry(store, make_swap, my_position_value="0.15")
    sizer = TradeSizer(store, tracking_config)
    swap = make_swap((TOKEN, "TKN", "700"), (SOL_MINT, "SOL", "0.1"))

    outcome = sizer.compute_amount(swap, _exit(entry.swap_id, None))

    assert outcome.value.amount == "0.15"


def test_exit_with_missing_entry_mirrors_original(store, make_swap, tracking_config) -> None:
    sizer = TradeSizer(store, tracking_config)
    swap = make_swap((TOKEN, "TKN", "350"), (SOL_MINT, "SOL", "0.042"))

    outcome = sizer.compute_amount(swap, _exit(999, Decimal("0.6")))

    assert outcome.value.amount == "350"
    assert outcome.value.token_address == TOKEN
    assert outcome.fallback_reason is FallbackReason.ENTRY_NOT_FOUND


def test_exit_without_related_id_mirrors_original(store, make_swap, tracking_config) -> None:
    sizer = TradeSizer(store, tracking_config)
    swap = make_swap((TOKEN, "TKN", "12.5"), (SOL_MINT, "SOL", "0.01"))

    outcome = sizer.compute_amount(swap, _exit(None, Decimal("1")))

    assert outcome.value.amount == "12.5"
    assert outcome.fallback_reason is FallbackReason.ENTRY_NOT_FOUND


def test_exit_lookup_failure_mirrors_original(make_swap, tracking_config) -> None:
    sizer = TradeSizer(LookupFailingStore(), tracking_config)
    swap = make_swap((TOKEN, "TKN", "350"), (SOL_MINT, "SOL", "0.042"))

    outcome = sizer.compute_amount(swap, _exit(1, Decimal("0.6")))

    assert outcome.value.amount == "350"
    assert outcome.value.token_address == TOKEN
    assert outcome.fallback_reason is FallbackReason.QUERY_FAILED
    assert METRICS.get("tracking.sizer.fallback.query_failed") == 1


class CorruptEntryStore:
    def __init__(self, entry):
        self._entry = entry

    def get_swap(self, swap_id):
        return self._entry


def test_exit_with_corrupt_position_value_mirrors_original(make_swap, tracking_config) -> None:
    entry = make_swap((SOL_MINT, "SOL", "0.07"), (TOKEN, "TKN", "700"), swap_id=1)
    entry.my_position_value = "garbage"
    sizer = TradeSizer(CorruptEntryStore(entry), tracking_config)
    swap = make_swap((TOKEN, "TKN", "350"), (SOL_MINT, "SOL", "0.042"))

    outcome = sizer.compute_amount(swap, _exit(1, Decimal("0.5")))

    assert outcome.value.amount == "350"
    assert outcome.value.token_address == TOKEN
    assert outcome.fallback_reason is FallbackReason.COMPUTATION_FAILED
    assert METRICS.get("tracking.sizer.fallback.computation_failed") == 1


def test_exit_with_zero_ratio_sizes_to_zero(store, make_swap, tracking_config) -> None:
    entry = _stored_entry(store, make_swap, my_position_value="0.2")
    sizer = TradeSizer(store, tracking_config)
    swap = make_swap((TOKEN, "TKN", "350"), (SOL_MINT, "SOL", "0.042"))

    outcome = sizer.compute_amount(swap, _exit(entry.swap_id, Decimal(0)))

    assert outcome.value.amount == "0"
    assert outcome.value.token_address == TOKEN
    assert not outcome.degraded


def test_string_swap_type_is_coerced(store, make_swap, tracking_config) -> None:
    sizer = TradeSizer(store, tracking_config)
    swap = make_swap((SOL_MINT, "SOL", "1.5"), (TOKEN, "TKN", "15000"))

    classification = SwapClassification(swap_type="entry")
    outcome = sizer.compute_amount(swap, classification)

    assert classification.swap_type is SwapType.ENTRY
    assert outcome.value.amount == "0.07"
    assert not outcome.degraded


def test_string_exit_ratio_is_parsed() -> None:
    classification = SwapClassification(swap_type="exit", related_entry_swap_id="4", exit_ratio="0.25")

    assert classification.swap_type is SwapType.EXIT
    assert classification.related_entry_swap_id == 4
    assert classification.exit_ratio == Decimal("0.25")


def test_missing_classification_mirrors_original(store, make_swap, tracking_config) -> None:
    sizer = TradeSizer(store, tracking_config)
    swap = make_swap((TOKEN, "TKN", "350"), (SOL_MINT, "SOL", "0.042"))

    outcome = sizer.compute_amount(swap, None)

    assert outcome.value.amount == "350"
    assert outcome.value.token_address == TOKEN
    assert outcome.fallback_reason is FallbackReason.COMPUTATION_FAILED


def test_unknown_swap_type_mirrors_original(store, make_swap, tracking_config) -> None:
    class Malformed:
        swap_type = "rebalance"
        related_entry_swap_id = None
        exit_ratio = None

    sizer = TradeSizer(store, tracking_config)
    swap = make_swap((TOKEN, "TKN", "12"), (SOL_MINT, "SOL", "0.01"))

    outcome = sizer.compute_amount(swap, Malformed())

    assert outcome.value.amount == "12"
    assert outcome.fallback_reason is FallbackReason.COMPUTATION_FAILED
