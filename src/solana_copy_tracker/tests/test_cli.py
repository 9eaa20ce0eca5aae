from __future__ import annotations

import json
from pathlib import Path

import pytest

from solana_copy_tracker import main as cli
from solana_copy_tracker.config import settings
from solana_copy_tracker.utils.constants import SOL_MINT

WALLET = "11111111111111111111111111111111"
TOKEN = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"


@pytest.fixture
def cli_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("APP_CONFIG_FILE", str(tmp_path / "missing.toml"))
    monkeypatch.delenv("SOLANA_FIXED_ENTRY_AMOUNT", raising=False)
    monkeypatch.delenv("TRACKING__FIXED_ENTRY_AMOUNT", raising=False)
    monkeypatch.setattr(cli, "bootstrap_observability", lambda config=None: None)
    settings.get_app_config.cache_clear()
    yield tmp_path
    settings.get_app_config.cache_clear()


def _write_swap(path: Path, payload: dict) -> str:
    path.write_text(json.dumps(payload))
    return str(path)


def test_record_then_size_exit(cli_env: Path) -> None:
    database = str(cli_env / "swaps.sqlite3")
    entry_file = _write_swap(
        cli_env / "entry.json",
        {
            "sourceWallet": WALLET,
            "sourceTimestamp": "2024-05-01T12:00:00Z",
            "tokenIn": {"address": SOL_MINT, "symbol": "SOL", "amount": "0.07"},
            "tokenOut": {"address": TOKEN, "symbol": "TKN", "amount": "700"},
            "usdValue": 10,
            "processed": True,
            "status": {"code": "completed"},
        },
    )
    exit_file = _write_swap(
        cli_env / "exit.json",
        {
            "sourceWallet": WALLET,
            "sourceTimestamp": "2024-05-01T13:00:00Z",
            "tokenIn": {"address": TOKEN, "symbol": "TKN", "amount": "350"},
            "tokenOut": {"address": SOL_MINT, "symbol": "SOL", "amount": "0.035"},
            "usdValue": 6,
        },
    )

    recorded = cli.run(["--database", database, "record", entry_file])
    assert recorded == {"id": 1}

    classified = cli.run(["--database", database, "classify", exit_file, "--wallet", WALLET])
    assert classified["swapType"] == "exit"
    assert classified["relatedEntrySwapId"] == 1
    assert classified["exitRatio"] == "0.6"
    assert classified["fallbackReason"] is None

    sized = cli.run(["--database", database, "size", exit_file, "--wallet", WALLET])
    assert sized["amount"] == "0.042"
    assert sized["tokenAddress"] == TOKEN
    assert sized["classification"]["swapType"] == "exit"

    balance = cli.run(["--database", database, "balance", WALLET, TOKEN])
    assert balance == {"value": "700", "fallbackReason": None}


def test_invalid_wallet_is_rejected(cli_env: Path) -> None:
    database = str(cli_env / "swaps.sqlite3")
    with pytest.raises(SystemExit):
        cli.run(["--database", database, "balance", "not-a-wallet", TOKEN])


def test_metrics_file_is_written_after_command(cli_env: Path) -> None:
    database = str(cli_env / "swaps.sqlite3")
    metrics_file = cli_env / "tracker.prom"
    swap_file = _write_swap(
        cli_env / "entry.json",
        {
            "sourceWallet": WALLET,
            "tokenIn": {"address": SOL_MINT, "symbol": "SOL", "amount": "1"},
            "tokenOut": {"address": TOKEN, "symbol": "TKN", "amount": "100"},
        },
    )

    result = cli.run(
        ["--database", database, "--metrics-file", str(metrics_file), "size", swap_file, "--wallet", WALLET]
    )

    assert result["amount"] == "0.07"
    lines = metrics_file.read_text().splitlines()
    assert "tracking_classifier_entry 1.0" in lines
    assert "tracking_sizer_entry 1.0" in lines
    assert "tracking_classifier_entry_candidates 0.0" in lines
    assert "tracking_classifier_query_seconds_count 1.0" in lines
