"""SQLite store for the last successful market catalog per source and query."""
from __future__ import annotations

import hashlib
import json
import sqlite3
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .models import Market, market_to_dict, markets_from_records

_PRAGMAS = ("PRAGMA journal_mode=WAL", "PRAGMA synchronous=NORMAL")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS catalog_cache (
    key TEXT PRIMARY KEY,
    source TEXT NOT NULL,
    markets_json TEXT NOT NULL,
    market_count INTEGER NOT NULL,
    created_at TEXT NOT NULL
)
"""


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def make_catalog_cache_key(source: str, params: Dict[str, Any]) -> str:
    canonical = json.dumps(params, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(f"{source}|{canonical}".encode("utf-8")).hexdigest()


class Cache:
    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        # Catalog fetches may run on the watch callback thread.
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        for pragma in _PRAGMAS:
            try:
                self.conn.execute(pragma).fetchall()
            except sqlite3.DatabaseError:
                continue
        with self.conn:
            self.conn.execute(_SCHEMA)

    def close(self) -> None:
        self.conn.close()

    def _row(self, column: str, key: str) -> Optional[sqlite3.Row]:
        return self.conn.execute(
            f"SELECT {column} FROM catalog_cache WHERE key = ?", (key,)
        ).fetchone()

    def get_catalog(self, key: str) -> Optional[List[Market]]:
        row = self._row("markets_json", key)
        if row is None:
            return None
        markets, _ = markets_from_records(json.loads(row["markets_json"]))
        return markets

    def get_catalog_created_at(self, key: str) -> Optional[str]:
        row = self._row("created_at", key)
        return row["created_at"] if row is not None else None

    def set_catalog(self, key: str, source: str, markets: List[Market]) -> None:
        payload = json.dumps([market_to_dict(m) for m in markets], ensure_ascii=False)
        with self.conn:
            self.conn.execute(
                "INSERT OR REPLACE INTO catalog_cache "
                "(key, source, markets_json, market_count, created_at) VALUES (?, ?, ?, ?, ?)",
                (key, source, payload, len(markets), utc_now_iso()),
            )
