from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any


def read_json(path: Path) -> Any | None:
    """
    Read JSON from disk.

    Returns None for missing files. Unlike a config loader, the store needs to
    see broken files, so OSError and json.JSONDecodeError propagate.
    """
    if not path.exists():
        return None
    raw = path.read_text(encoding="utf-8")
    return json.loads(raw)


def write_json(path: Path, payload: Any) -> None:
    """
    Write compact JSON in place (documents are rewritten whole on every set).
    """
    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, separators=(",", ":"))


def replace_json(path: Path, payload: Any) -> None:
    """
    Swap `path` for a fully written copy of `payload` (keys sorted, compact).

    The copy is flushed to disk under a per-process temp name before the rename,
    so readers and crashes see either the old file or the new one. The temp
    file is removed if anything fails before the rename.
    """
    tmp_path = path.with_name(f".{path.name}.{os.getpid()}.tmp")
    try:
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(payload, f, separators=(",", ":"), sort_keys=True)
            f.flush()
            os.fsync(f.fileno())
        tmp_path.replace(path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
