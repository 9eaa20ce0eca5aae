"""Persistence layer for observed and mirrored swap records."""

from __future__ import annotations

import sqlite3
import threading
from dataclasses import replace
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterator, List, Optional, Protocol, Sequence, TypeVar

from cachetools import TTLCache
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .schemas import SwapRecord, SwapStatus, SwapType, TokenTransfer, format_amount


class SwapRepository(Protocol):
    """Read interface the tracking components depend on."""

    def get_swap(self, swap_id: int) -> Optional[SwapRecord]:
        ...

    def find_entry_candidates(
        self,
        wallet_address: str,
        chain: str,
        token_address: str,
        statuses: Sequence[str],
    ) -> List[SwapRecord]:
        ...

    def list_swaps_for_token(self, wallet_address: str, chain: str, token_address: str) -> List[SwapRecord]:
        ...


CREATE_SWAP_TABLE = """
CREATE TABLE IF NOT EXISTS swaps (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    source_wallet TEXT NOT NULL,
    source_chain TEXT NOT NULL,
    source_timestamp TEXT NOT NULL,
    source_tx_hash TEXT,
    token_in_address TEXT NOT NULL,
    token_in_symbol TEXT NOT NULL,
    token_in_amount TEXT NOT NULL,
    token_out_address TEXT NOT NULL,
    token_out_symbol TEXT NOT NULL,
    token_out_amount TEXT NOT NULL,
    usd_value REAL,
    swap_type TEXT NOT NULL,
    related_entry_swap_id INTEGER REFERENCES swaps(id),
    exit_ratio TEXT,
    my_position_value TEXT,
    processed INTEGER NOT NULL DEFAULT 0,
    status_code TEXT NOT NULL
);
"""

CREATE_ENTRY_LOOKUP_INDEX = """
CREATE INDEX IF NOT EXISTS idx_swaps_entry_lookup
ON swaps (source_wallet, source_chain, swap_type, token_out_address, source_timestamp);
"""

CREATE_TOKEN_IN_INDEX = """
CREATE INDEX IF NOT EXISTS idx_swaps_token_in
ON swaps (source_wallet, source_chain, token_in_address, source_timestamp);
"""

CREATE_SCHEMA_VERSION_TABLE = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    version INTEGER NOT NULL
);
"""

SCHEMA_VERSION = 2

_SWAP_COLUMNS = (
    "id, source_wallet, source_chain, source_timestamp, source_tx_hash, "
    "token_in_address, token_in_symbol, token_in_amount, "
    "token_out_address, token_out_symbol, token_out_amount, "
    "usd_value, swap_type, related_entry_swap_id, exit_ratio, my_position_value, "
    "processed, status_code"
)

T = TypeVar("T")


def _format_timestamp(value: datetime) -> str:
    # Fixed-width UTC text keeps lexical and chronological order identical.
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _row_to_swap(row: Sequence[Any]) -> SwapRecord:
    return SwapRecord(
        swap_id=row[0],
        source_wallet=row[1],
        source_chain=row[2],
        source_timestamp=datetime.fromisoformat(row[3]),
        source_tx_hash=row[4],
        token_in=TokenTransfer(address=row[5], symbol=row[6], amount=row[7]),
        token_out=TokenTransfer(address=row[8], symbol=row[9], amount=row[10]),
        usd_value=row[11],
        swap_type=SwapType(row[12]),
        related_entry_swap_id=row[13],
        exit_ratio=row[14],
        my_position_value=row[15],
        processed=bool(row[16]),
        status_code=SwapStatus(row[17]),
    )


def _copy_swap(record: SwapRecord) -> SwapRecord:
    # Cached records are shared; callers get their own legs too.
    return replace(record, token_in=replace(record.token_in), token_out=replace(record.token_out))

class SQLiteSwapStore:
    """SQLite-backed store for swap records."""

    def __init__(
        self,
        database_path: Path,
        *,
        cache_ttl_seconds: int = 600,
        query_retry_attempts: int = 3,
    ) -> None:
        database_path = Path(database_path).resolve()
        if not database_path.parent.exists():
            raise ValueError(f"Database directory does not exist: {database_path.parent}")
        if not database_path.parent.is_dir():
            raise ValueError(f"Database path is not a directory: {database_path.parent}")
        if query_retry_attempts < 1:
            raise ValueError("query_retry_attempts must be at least 1")

        self._database_path = database_path
        self._retry_attempts = query_retry_attempts
        self._cache_lock = threading.Lock()
        self._record_cache: TTLCache[int, SwapRecord] = TTLCache(maxsize=1024, ttl=max(cache_ttl_seconds, 0))
        self._initialize()

    @classmethod
    def from_config(cls, config: Any) -> "SQLiteSwapStore":
        """Build a store from a ``StorageConfig``."""

        return cls(
            config.database_path,
            cache_ttl_seconds=config.cache_ttl_seconds,
            query_retry_attempts=config.query_retry_attempts,
        )

    @property
    def database_path(self) -> Path:
        return self._database_path

    def _initialize(self) -> None:
        with self._connect() as con:
            con.execute(CREATE_SWAP_TABLE)
            con.execute(CREATE_SCHEMA_VERSION_TABLE)
            self._apply_migrations(con)
            con.commit()

    def _apply_migrations(self, con: sqlite3.Connection) -> None:
        current = self._get_schema_version(con)
        if current == 0:
            self._set_schema_version(con, 1)
            current = 1
        if current < 2:
            self._migrate_to_v2(con)
            self._set_schema_version(con, 2)

    def _get_schema_version(self, con: sqlite3.Connection) -> int:
        cur = con.execute("SELECT version FROM schema_migrations ORDER BY ROWID DESC LIMIT 1")
        row = cur.fetchone()
        if row is None:
            return 0
        return int(row[0])

    def _set_schema_version(self, con: sqlite3.Connection, version: int) -> None:
        con.execute("DELETE FROM schema_migrations")
        con.execute("INSERT INTO schema_migrations (version) VALUES (?)", (version,))

    def _migrate_to_v2(self, con: sqlite3.Connection) -> None:
        con.execute(CREATE_ENTRY_LOOKUP_INDEX)
        con.execute(CREATE_TOKEN_IN_INDEX)

    def schema_version(self) -> int:
        with self._connect() as con:
            return self._get_schema_version(con)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        con = sqlite3.connect(self._database_path)
        try:
            yield con
        finally:
            con.close()

    def _read(self, query: Callable[[], T]) -> T:
        """Run a read query, retrying transient lock errors."""

        for attempt in Retrying(
            stop=stop_after_attempt(self._retry_attempts),
            wait=wait_exponential(multiplier=0.05, max=1),
            retry=retry_if_exception_type(sqlite3.OperationalError),
            reraise=True,
        ):
            with attempt:
                return query()
        raise AssertionError("unreachable")  # pragma: no cover

    def record_swap(self, record: SwapRecord) -> SwapRecord:
        """Insert ``record`` and return it with its assigned identifier."""

        with self._connect() as con:
            cur = con.execute(
                """
                INSERT INTO swaps (
                    source_wallet, source_chain, source_timestamp, source_tx_hash,
                    token_in_address, token_in_symbol, token_in_amount,
                    token_out_address, token_out_symbol, token_out_amount,
                    usd_value, swap_type, related_entry_swap_id, exit_ratio, my_position_value,
                    processed, status_code
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.source_wallet,
                    record.source_chain,
                    _format_timestamp(record.source_timestamp),
                    record.source_tx_hash,
                    record.token_in.address,
                    record.token_in.symbol,
                    record.token_in.amount,
                    record.token_out.address,
                    record.token_out.symbol,
                    record.token_out.amount,
                    record.usd_value,
                    record.swap_type.value,
                    record.related_entry_swap_id,
                    None if record.exit_ratio is None else format_amount(record.exit_ratio),
                    record.my_position_value,
                    int(record.processed),
                    record.status_code.value,
                ),
            )
            con.commit()
            record.swap_id = cur.lastrowid
        return record

    def update_swap_status(
        self,
        swap_id: int,
        status: SwapStatus,
        *,
        processed: Optional[bool] = None,
    ) -> None:
        status = SwapStatus(status)
        with self._connect() as con:
            if processed is None:
                cur = con.execute("UPDATE swaps SET status_code = ? WHERE id = ?", (status.value, swap_id))
            else:
                cur = con.execute(
                    "UPDATE swaps SET status_code = ?, processed = ? WHERE id = ?",
                    (status.value, int(processed), swap_id),
                )
            con.commit()
            if cur.rowcount == 0:
                raise ValueError(f"Unknown swap id {swap_id}")
        with self._cache_lock:
            self._record_cache.pop(swap_id, None)

    def get_swap(self, swap_id: int) -> Optional[SwapRecord]:
        with self._cache_lock:
            cached = self._record_cache.get(swap_id)
        if cached is not None:
            return _copy_swap(cached)

        def _query() -> Optional[SwapRecord]:
            with self._connect() as con:
                cur = con.execute(f"SELECT {_SWAP_COLUMNS} FROM swaps WHERE id = ?", (swap_id,))
                row = cur.fetchone()
            return None if row is None else _row_to_swap(row)

        record = self._read(_query)
        if record is not None:
            with self._cache_lock:
                self._record_cache[swap_id] = _copy_swap(record)
        return record

    def find_entry_candidates(
        self,
        wallet_address: str,
        chain: str,
        token_address: str,
        statuses: Sequence[str],
    ) -> List[SwapRecord]:
        """Processed entry swaps that acquired ``token_address``, most recent first."""

        status_values = [SwapStatus(status).value for status in statuses]
        if not status_values:
            return []
        placeholders = ", ".join("?" for _ in status_values)

        def _query() -> List[SwapRecord]:
            with self._connect() as con:
                cur = con.execute(
                    f"""
                    SELECT {_SWAP_COLUMNS} FROM swaps
                    WHERE source_wallet = ?
                      AND source_chain = ?
                      AND swap_type = ?
                      AND token_out_address = ?
                      AND processed = 1
                      AND status_code IN ({placeholders})
                    ORDER BY source_timestamp DESC, id DESC
                    """,
                    (wallet_address, chain, SwapType.ENTRY.value, token_address, *status_values),
                )
                rows = cur.fetchall()
            return [_row_to_swap(row) for row in rows]

        return self._read(_query)

    def list_swaps_for_token(self, wallet_address: str, chain: str, token_address: str) -> List[SwapRecord]:
        """Every swap of the wallet touching ``token_address``, oldest first."""

        def _query() -> List[SwapRecord]:
            with self._connect() as con:
                cur = con.execute(
                    f"""
                    SELECT {_SWAP_COLUMNS} FROM swaps
                    WHERE source_wallet = ?
                      AND source_chain = ?
                      AND (token_in_address = ? OR token_out_address = ?)
                    ORDER BY source_timestamp ASC, id ASC
                    """,
                    (wallet_address, chain, token_address, token_address),
                )
                rows = cur.fetchall()
            return [_row_to_swap(row) for row in rows]

        return self._read(_query)


__all__ = ["SQLiteSwapStore", "SwapRepository", "SCHEMA_VERSION"]
