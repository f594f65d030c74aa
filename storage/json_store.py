"""JSON file persistence for relay artifacts and lookup tables."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def dumps(payload: Any) -> str:
    """Serialize ``payload`` the way every artifact in ``data/`` is written."""

    return json.dumps(payload, indent=2, ensure_ascii=True) + "\n"


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-standard JSON constant {name}")


def read_json(path: str | os.PathLike[str], *, allow_nan: bool = True) -> Any:
    """Load a JSON document. Raises ``FileNotFoundError`` or ``ValueError``.

    With ``allow_nan=False`` the ``NaN`` and ``Infinity`` literals are rejected.
    """

    with Path(path).open("r", encoding="utf-8") as handle:
        if allow_nan:
            return json.load(handle)
        return json.load(handle, parse_constant=_reject_constant)


def write_json(path: str | os.PathLike[str], payload: Any) -> Path:
    """Write ``payload`` to ``path``, replacing any previous file atomically."""

    dest = Path(path)
    _ensure_parent(dest)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{dest.name}.", dir=dest.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(dumps(payload))
        os.replace(tmp_name, dest)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise
    return dest


__all__ = ["dumps", "read_json", "write_json"]
