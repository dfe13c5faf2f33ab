"""Utilities for durable JSON documents on disk."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from planrun.exceptions import PersistenceError


def write_text_atomic(path: Path, text: str) -> None:
    """Write ``text`` so readers never observe a partial file.

    Writes to a temp file in the same directory, fsyncs, then renames over
    ``path``.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    except OSError as e:
        raise PersistenceError(f"Cannot write {path.name}: {e}", path=path) from e

    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except OSError as e:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise PersistenceError(f"Cannot write {path.name}: {e}", path=path) from e


def write_json_atomic(path: Path, data: Any) -> None:
    write_text_atomic(path, json.dumps(data, indent=2, ensure_ascii=False) + "\n")


def read_json_object(path: Path) -> dict[str, Any]:
    """Read a JSON object from ``path``.

    Raises:
        FileNotFoundError: If the file does not exist
        PersistenceError: On any other read error, invalid JSON or a non-object
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise
    except UnicodeDecodeError as e:
        raise PersistenceError(f"Invalid UTF-8 in {path.name}: {e}", path=path) from e
    except OSError as e:
        raise PersistenceError(f"Cannot read {path.name}: {e}", path=path) from e

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise PersistenceError(f"Invalid JSON in {path.name}: {e}", path=path) from e

    if not isinstance(data, dict):
        raise PersistenceError(f"Expected a JSON object in {path.name}", path=path)
    return data
