"""Export helpers that turn the relay artifact into CSV or Parquet files."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Mapping

import duckdb

from storage.db import RELAYS_TABLE, connect, insert_relays

EXPORT_FORMATS = {"csv", "parquet"}


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _default_query() -> str:
    return f'SELECT * FROM {RELAYS_TABLE} ORDER BY "countryCode", city, id'


def _copy(conn: duckdb.DuckDBPyConnection, destination: Path, options: str) -> Path:
    _ensure_parent(destination)
    sanitized_path = str(destination).replace("'", "''")
    conn.execute(f"COPY ({_default_query()}) TO '{sanitized_path}' ({options})")
    return destination


def export_relays(
    relays: Iterable[Mapping[str, Any]],
    destination: str | Path,
    *,
    fmt: str = "csv",
    include_header: bool = True,
) -> Path:
    """Stage ``relays`` in an in-memory DuckDB and COPY them to ``destination``."""

    fmt = fmt.lower()
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format {fmt!r}; expected one of {sorted(EXPORT_FORMATS)}")

    dest_path = Path(destination)
    conn = connect()
    try:
        insert_relays(conn, relays)
        if fmt == "csv":
            return _copy(conn, dest_path, f"FORMAT CSV, HEADER {'TRUE' if include_header else 'FALSE'}")
        return _copy(conn, dest_path, "FORMAT PARQUET")
    finally:
        conn.close()


__all__ = ["EXPORT_FORMATS", "export_relays"]
