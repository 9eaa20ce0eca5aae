"""Command line entrypoint for inspecting copy-trade tracking decisions."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .config.settings import AppConfig, get_app_config
from .datalake.schemas import SwapRecord, TrackingOutcome
from .datalake.storage import SQLiteSwapStore
from .monitoring import bootstrap_observability, swap_scope
from .monitoring.logger import get_logger
from .monitoring.metrics import METRICS
from .tracking import PositionTracker
from .utils.addresses import normalize_pubkey

logger = get_logger(__name__)


def _pubkey_arg(value: str) -> str:
    try:
        return normalize_pubkey(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _load_swap(source: str) -> SwapRecord:
    if source == "-":
        payload = json.load(sys.stdin)
    else:
        with Path(source).open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
    if not isinstance(payload, dict):
        raise ValueError("Swap JSON must be an object")
    return SwapRecord.from_payload(payload)


def _outcome_payload(outcome: TrackingOutcome[Any]) -> Dict[str, Any]:
    value = outcome.value
    body: Dict[str, Any] = value.to_payload() if hasattr(value, "to_payload") else {"value": value}
    body["fallbackReason"] = None if outcome.fallback_reason is None else outcome.fallback_reason.value
    return body


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="copy-tracker",
        description="Classify tracked-wallet swaps and size copy trades",
    )
    parser.add_argument(
        "--database",
        type=Path,
        default=None,
        help="SQLite swap store (defaults to storage.database_path from config)",
    )
    parser.add_argument(
        "--metrics-file",
        type=Path,
        default=None,
        help="Write tracking metrics in Prometheus text format after the command runs",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    record_cmd = sub.add_parser("record", help="Insert a swap record into the store")
    record_cmd.add_argument("swap", help="Path to swap JSON, or '-' for stdin")

    wallet_common = argparse.ArgumentParser(add_help=False)
    wallet_common.add_argument("swap", help="Path to swap JSON, or '-' for stdin")
    wallet_common.add_argument("--wallet", required=True, type=_pubkey_arg, help="Tracked wallet address")

    sub.add_parser("classify", parents=[wallet_common], help="Detect whether a swap is an entry or an exit")
    sub.add_parser("size", parents=[wallet_common], help="Classify a swap and compute the copy-trade amount")

    balance_cmd = sub.add_parser("balance", help="Estimate a wallet's token balance from recorded swaps")
    balance_cmd.add_argument("wallet", type=_pubkey_arg, help="Wallet address")
    balance_cmd.add_argument("token", type=_pubkey_arg, help="Token mint address")
    return parser


def run(argv: Optional[Sequence[str]] = None) -> Dict[str, Any]:
    """Execute one CLI command and return its JSON-serialisable result."""

    parser = build_parser()
    args = parser.parse_args(argv)
    config = get_app_config()
    bootstrap_observability(config)
    try:
        return _dispatch(parser, args, config)
    finally:
        if args.metrics_file is not None:
            _write_metrics(args.metrics_file)


def _write_metrics(path: Path) -> None:
    path.write_text(METRICS.export_prometheus(), encoding="utf-8")
    logger.info("Wrote metrics to %s", path)


def _dispatch(parser: argparse.ArgumentParser, args: argparse.Namespace, config: AppConfig) -> Dict[str, Any]:
    if args.database is not None:
        store = SQLiteSwapStore(
            args.database,
            cache_ttl_seconds=config.storage.cache_ttl_seconds,
            query_retry_attempts=config.storage.query_retry_attempts,
        )
    else:
        store = SQLiteSwapStore.from_config(config.storage)
    tracker = PositionTracker(store, config.tracking)

    if args.command == "balance":
        return _outcome_payload(tracker.get_token_balance_outcome(args.wallet, args.token))

    try:
        swap = _load_swap(args.swap)
    except (OSError, ValueError) as exc:
        parser.error(f"could not load swap: {exc}")

    with swap_scope(swap.source_tx_hash, getattr(args, "wallet", None) or swap.source_wallet):
        if args.command == "record":
            stored = store.record_swap(swap)
            logger.info("Recorded swap %s for %s", stored.swap_id, stored.source_wallet)
            return {"id": stored.swap_id}
        if args.command == "classify":
            return _outcome_payload(tracker.detect_swap_type_outcome(swap, args.wallet))
        classification, amount = tracker.mirror(swap, args.wallet)
        result = _outcome_payload(amount)
        result["classification"] = _outcome_payload(classification)
        return result


def main(argv: Optional[List[str]] = None) -> None:
    result = run(argv)
    print(json.dumps(result, indent=2, default=str))


if __name__ == "__main__":
    main()
