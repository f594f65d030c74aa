"""DuckDB staging of canonical relays for tabular exports."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Iterable, Mapping

import duckdb

RELAYS_TABLE = "relays"

_COLUMNS = ("id", "country", "countryCode", "city", "lat", "lon", "ownership", "protocols", "active")


def _ensure_parent_dir(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def connect(path: str | os.PathLike[str] | None = None, *, ensure: bool = True) -> duckdb.DuckDBPyConnection:
    """Open a DuckDB connection (in-memory unless ``path`` is given)."""

    if path is None:
        conn = duckdb.connect(":memory:")
    else:
        db_path = Path(path)
        _ensure_parent_dir(db_path)
        conn = duckdb.connect(str(db_path))
    if ensure:
        ensure_relays_table(conn)
    return conn


def ensure_relays_table(conn: duckdb.DuckDBPyConnection) -> None:
    conn.execute(
        f"""
        CREATE TABLE IF NOT EXISTS {RELAYS_TABLE} (
            id TEXT NOT NULL,
            country TEXT NOT NULL,
            "countryCode" TEXT NOT NULL,
            city TEXT NOT NULL,
            lat DOUBLE,
            lon DOUBLE,
            ownership TEXT NOT NULL,
            protocols TEXT NOT NULL,
            active BOOLEAN NOT NULL
        )
        """
    )


def _serialize_relay(relay: Mapping[str, Any]) -> tuple:
    return (
        str(relay.get("id") or ""),
        str(relay.get("country") or "Unknown"),
        str(relay.get("countryCode") or "XX"),
        str(relay.get("city") or ""),
        relay.get("lat"),
        relay.get("lon"),
        str(relay.get("ownership") or "Mullvad"),
        ",".join(str(protocol) for protocol in relay.get("protocols") or []),
        bool(relay.get("active", True)),
    )


def insert_relays(conn: duckdb.DuckDBPyConnection, relays: Iterable[Mapping[str, Any]]) -> int:
    """Append serialized relays (wire field names) to the staging table.

    Returns the number of rows written.
    """

    serialized = [_serialize_relay(relay) for relay in relays if isinstance(relay, Mapping)]
    if not serialized:
        return 0
    columns = ", ".join(f'"{column}"' for column in _COLUMNS)
    placeholders = ", ".join("?" for _ in _COLUMNS)
    conn.executemany(
        f"INSERT INTO {RELAYS_TABLE} ({columns}) VALUES ({placeholders})",
        serialized,
    )
    return len(serialized)


__all__ = ["RELAYS_TABLE", "connect", "ensure_relays_table", "insert_relays"]
