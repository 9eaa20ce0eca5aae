"""Data models shared by the swap store and the tracking components."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Generic, Mapping, Optional, TypeVar

from ..utils.constants import SOLANA_CHAIN, utc_now


class SwapType(str, Enum):
    """Whether a swap opens or closes a position."""

    ENTRY = "entry"
    EXIT = "exit"


class SwapStatus(str, Enum):
    """Lifecycle marker set by the processing pipeline."""

    PENDING = "pending"
    SUBMITTED = "submitted"
    COMPLETED = "completed"
    FAILED = "failed"


class FallbackReason(str, Enum):
    """Why a tracking decision degraded to its safe default."""

    QUERY_FAILED = "query_failed"
    ENTRY_NOT_FOUND = "entry_not_found"
    NON_POSITIVE_NATIVE_LEG = "non_positive_native_leg"
    COMPUTATION_FAILED = "computation_failed"


def parse_amount(value: Any) -> Decimal:
    """Parse a decimal amount string, rejecting NaN and infinities."""

    if isinstance(value, float):
        value = repr(value)
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"Invalid decimal amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Invalid decimal amount: {value!r}")
    return amount


def format_amount(value: Decimal) -> str:
    """Render ``value`` as a plain decimal string without exponent or trailing zeros."""

    if value == 0:
        return "0"
    return format(value.normalize(), "f")


def _ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return _ensure_utc(value)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, timezone.utc)
    if isinstance(value, str):
        return _ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    raise ValueError(f"Unsupported timestamp value: {value!r}")


@dataclass(slots=True)
class TokenTransfer:
    """One leg of a swap."""

    address: str
    symbol: str
    amount: str

    def __post_init__(self) -> None:
        if not self.address:
            raise ValueError("Token transfer requires an address")
        self.amount = str(self.amount).strip()
        parse_amount(self.amount)

    @property
    def quantity(self) -> Decimal:
        return parse_amount(self.amount)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "TokenTransfer":
        return cls(
            address=str(payload.get("address") or payload.get("mint") or ""),
            symbol=str(payload.get("symbol") or ""),
            amount=str(payload.get("amount", "0")),
        )

    def to_payload(self) -> dict[str, str]:
        return {"address": self.address, "symbol": self.symbol, "amount": self.amount}


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _pick(payload: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in payload:
            return payload[key]
    return default


@dataclass(slots=True)
class SwapRecord:
    """Observed or bot-executed swap persisted by the ingestion pipeline."""

    token_in: TokenTransfer
    token_out: TokenTransfer
    source_wallet: str = ""
    source_chain: str = SOLANA_CHAIN
    source_timestamp: datetime = field(default_factory=utc_now)
    usd_value: Optional[float] = None
    swap_type: SwapType = SwapType.ENTRY
    related_entry_swap_id: Optional[int] = None
    exit_ratio: Optional[Decimal] = None
    my_position_value: Optional[str] = None
    processed: bool = False
    status_code: SwapStatus = SwapStatus.PENDING
    source_tx_hash: Optional[str] = None
    swap_id: Optional[int] = None

    def __post_init__(self) -> None:
        self.swap_type = SwapType(self.swap_type)
        self.status_code = SwapStatus(self.status_code)
        self.source_timestamp = _parse_timestamp(self.source_timestamp)
        if self.usd_value is not None:
            self.usd_value = float(self.usd_value)
            if self.usd_value < 0:
                raise ValueError(f"usd_value must not be negative, got {self.usd_value}")
        if self.exit_ratio is not None:
            self.exit_ratio = parse_amount(self.exit_ratio)
        if self.my_position_value is not None:
            self.my_position_value = str(self.my_position_value).strip() or None
            if self.my_position_value is not None:
                parse_amount(self.my_position_value)
        if self.swap_type is SwapType.ENTRY and self.related_entry_swap_id is not None:
            raise ValueError("Entry swaps cannot reference another entry swap")

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "SwapRecord":
        """Build a record from camelCase or snake_case JSON."""

        token_in = _pick(payload, "tokenIn", "token_in")
        token_out = _pick(payload, "tokenOut", "token_out")
        if not isinstance(token_in, Mapping) or not isinstance(token_out, Mapping):
            raise ValueError("Swap payload requires tokenIn and tokenOut objects")
        status = _pick(payload, "status", "status_code", default=SwapStatus.PENDING.value)
        if isinstance(status, Mapping):
            status = status.get("code", SwapStatus.PENDING.value)
        timestamp = _pick(payload, "sourceTimestamp", "source_timestamp")
        related = _pick(payload, "relatedEntrySwapId", "related_entry_swap_id")
        swap_id = _pick(payload, "id", "swap_id")
        return cls(
            token_in=TokenTransfer.from_payload(token_in),
            token_out=TokenTransfer.from_payload(token_out),
            source_wallet=str(_pick(payload, "sourceWallet", "source_wallet", default="")),
            source_chain=str(_pick(payload, "sourceChain", "source_chain", default=SOLANA_CHAIN)),
            source_timestamp=utc_now() if timestamp is None else timestamp,
            usd_value=_pick(payload, "usdValue", "usd_value"),
            swap_type=_pick(payload, "swapType", "swap_type", default=SwapType.ENTRY.value),
            related_entry_swap_id=None if related is None else int(related),
            exit_ratio=_pick(payload, "exitRatio", "exit_ratio"),
            my_position_value=_pick(payload, "myPositionValue", "my_position_value"),
            processed=_coerce_bool(_pick(payload, "processed", default=False)),
            status_code=status,
            source_tx_hash=_pick(payload, "sourceTxHash", "source_tx_hash", "transactionHash"),
            swap_id=None if swap_id is None else int(swap_id),
        )


@dataclass(slots=True, frozen=True)
class SwapClassification:
    """Entry/exit decision for an observed swap."""

    swap_type: SwapType
    related_entry_swap_id: Optional[int] = None
    exit_ratio: Optional[Decimal] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "swap_type", SwapType(self.swap_type))
        if self.exit_ratio is not None:
            object.__setattr__(self, "exit_ratio", parse_amount(self.exit_ratio))
        if self.related_entry_swap_id is not None:
            object.__setattr__(self, "related_entry_swap_id", int(self.related_entry_swap_id))

    def to_payload(self) -> dict[str, Any]:
        return {
            "swapType": self.swap_type.value,
            "relatedEntrySwapId": self.related_entry_swap_id,
            "exitRatio": None if self.exit_ratio is None else format_amount(self.exit_ratio),
        }


ENTRY_CLASSIFICATION = SwapClassification(swap_type=SwapType.ENTRY)


@dataclass(slots=True, frozen=True)
class TradeAmount:
    """How much of which asset the bot should trade."""

    amount: str
    token_address: str

    def to_payload(self) -> dict[str, str]:
        return {"amount": self.amount, "tokenAddress": self.token_address}


T = TypeVar("T")


@dataclass(slots=True, frozen=True)
class TrackingOutcome(Generic[T]):
    """Result of a tracking operation, tagged with a fallback reason when degraded."""

    value: T
    fallback_reason: Optional[FallbackReason] = None

    @property
    def degraded(self) -> bool:
        return self.fallback_reason is not None


__all__ = [
    "ENTRY_CLASSIFICATION",
    "FallbackReason",
    "SwapClassification",
    "SwapRecord",
    "SwapStatus",
    "SwapType",
    "TokenTransfer",
    "TrackingOutcome",
    "TradeAmount",
    "format_amount",
    "parse_amount",
]
