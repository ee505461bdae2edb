"""SQLite-backed observation history and canonical position table."""
from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..models import CanonicalPosition, ExtractedBreakdown, Observation, ScrapedPosition
from ..parsers.capture import breakdown_to_dict, parse_timestamp, position_to_dict
from ..resolver import position_key

logger = logging.getLogger(__name__)

_CANONICAL_COLUMNS = (
    "protocol",
    "pair",
    "normalized_pair",
    "captured_at",
    "token0",
    "token1",
    "balance",
    "pending_yield",
    "apy",
    "range_min",
    "range_max",
    "current_price",
    "in_range",
    "token0_amount",
    "token1_amount",
    "token0_percentage",
    "token1_percentage",
    "breakdown_at",
)


def _utc_iso(ts: datetime | None) -> str | None:
    """UTC ISO string, so lexical order in SQL matches time order."""
    if ts is None:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat()


class SqliteObservationStore:
    """Append-only observation log plus one canonical row per position key."""

    def __init__(
        self,
        db_path: str | Path = "clm_positions.db",
        aliases: Mapping[str, str] | None = None,
    ) -> None:
        self.db_path = str(db_path)
        self._aliases = aliases
        self.conn = sqlite3.connect(self.db_path)
        self.conn.row_factory = sqlite3.Row
        self.create_tables()

    def __enter__(self) -> SqliteObservationStore:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def close(self) -> None:
        self.conn.close()

    def create_tables(self) -> None:
        """Create tables and indexes if missing."""
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS observations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                position_key TEXT NOT NULL,
                protocol TEXT NOT NULL,
                pair TEXT NOT NULL,
                observed_at TEXT NOT NULL,
                position_json TEXT NOT NULL,
                breakdown_json TEXT
            )
            """
        )
        self.conn.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_observations_key_time
            ON observations(position_key, observed_at)
            """
        )
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS canonical_positions (
                position_key TEXT PRIMARY KEY,
                protocol TEXT NOT NULL,
                pair TEXT NOT NULL,
                normalized_pair TEXT NOT NULL,
                captured_at TEXT NOT NULL,
                token0 TEXT,
                token1 TEXT,
                balance REAL,
                pending_yield REAL,
                apy REAL,
                range_min REAL,
                range_max REAL,
                current_price REAL,
                in_range BOOLEAN,
                token0_amount REAL,
                token1_amount REAL,
                token0_percentage REAL,
                token1_percentage REAL,
                breakdown_at TEXT
            )
            """
        )
        self.conn.commit()

    # ------------------------------------------------------------------
    # Observations
    # ------------------------------------------------------------------

    def add_observation(self, observation: Observation) -> None:
        position = observation.position
        position_json = json.dumps(position_to_dict(position))
        breakdown_json = (
            json.dumps(breakdown_to_dict(observation.breakdown))
            if observation.breakdown is not None
            else None
        )
        self.conn.execute(
            """
            INSERT INTO observations
                (position_key, protocol, pair, observed_at, position_json, breakdown_json)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                position_key(position.protocol, position.pair, self._aliases),
                position.protocol,
                position.pair,
                _utc_iso(observation.observed_at),
                position_json,
                breakdown_json,
            ),
        )
        self.conn.commit()

    def fetch_observations(self, key: str) -> list[Observation]:
        """All observations for a key, oldest first."""
        cursor = self.conn.execute(
            """
            SELECT position_json, breakdown_json FROM observations
            WHERE position_key = ?
            ORDER BY observed_at ASC, id ASC
            """,
            (key,),
        )
        return [
            Observation(
                position=self._position_from_json(row["position_json"]),
                breakdown=self._breakdown_from_json(row["breakdown_json"]),
            )
            for row in cursor.fetchall()
        ]

    def keys(self, protocol: str | None = None) -> list[str]:
        """Distinct position keys that have observations."""
        query = "SELECT DISTINCT position_key FROM observations"
        params: tuple[Any, ...] = ()
        if protocol:
            query += " WHERE protocol = ?"
            params = (protocol,)
        query += " ORDER BY position_key"
        return [row[0] for row in self.conn.execute(query, params).fetchall()]

    @staticmethod
    def _position_from_json(text: str) -> ScrapedPosition:
        fields = json.loads(text)
        fields["captured_at"] = parse_timestamp(fields["captured_at"])
        return ScrapedPosition(**fields)

    @staticmethod
    def _breakdown_from_json(text: str | None) -> ExtractedBreakdown | None:
        if not text:
            return None
        fields = json.loads(text)
        fields["extracted_at"] = parse_timestamp(fields["extracted_at"])
        return ExtractedBreakdown(**fields)

    # ------------------------------------------------------------------
    # Canonical records
    # ------------------------------------------------------------------

    def get_canonical(self, key: str) -> CanonicalPosition | None:
        row = self.conn.execute(
            "SELECT * FROM canonical_positions WHERE position_key = ?", (key,)
        ).fetchone()
        return self._canonical_from_row(row) if row else None

    def upsert_canonical(self, record: CanonicalPosition) -> None:
        values: dict[str, Any] = {col: getattr(record, col) for col in _CANONICAL_COLUMNS}
        values["captured_at"] = _utc_iso(record.captured_at)
        values["breakdown_at"] = _utc_iso(record.breakdown_at)

        columns = ("position_key",) + _CANONICAL_COLUMNS
        placeholders = ", ".join("?" for _ in columns)
        updates = ", ".join(f"{col} = excluded.{col}" for col in _CANONICAL_COLUMNS)
        self.conn.execute(
            f"""
            INSERT INTO canonical_positions ({", ".join(columns)})
            VALUES ({placeholders})
            ON CONFLICT(position_key) DO UPDATE SET {updates}
            """,
            (record.key, *(values[col] for col in _CANONICAL_COLUMNS)),
        )
        self.conn.commit()
        logger.debug("Upserted canonical record %s", record.key)

    def list_canonical(self, protocol: str | None = None) -> list[CanonicalPosition]:
        query = "SELECT * FROM canonical_positions"
        params: tuple[Any, ...] = ()
        if protocol:
            query += " WHERE protocol = ?"
            params = (protocol,)
        query += " ORDER BY position_key"
        return [self._canonical_from_row(row) for row in self.conn.execute(query, params)]

    @staticmethod
    def _canonical_from_row(row: sqlite3.Row) -> CanonicalPosition:
        fields = {col: row[col] for col in _CANONICAL_COLUMNS}
        fields["captured_at"] = parse_timestamp(fields["captured_at"])
        fields["breakdown_at"] = parse_timestamp(fields["breakdown_at"])
        if fields["in_range"] is not None:
            fields["in_range"] = bool(fields["in_range"])
        return CanonicalPosition(**fields)
