"""CLI I/O helpers for atomic output writing."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any


def read_text_input(path: Path) -> str:
    """Read raw source text; tolerate a UTF-8 BOM from clipboard dumps."""

    return path.read_text(encoding="utf-8-sig")


def write_text_atomic(path: Path, text: str) -> None:
    """Write rendered output atomically using a temporary file + replace."""

    if text and not text.endswith("\n"):
        text += "\n"
    _atomic_write(path, lambda handle: handle.write(text))


def write_json_atomic(path: Path, payload: dict[str, Any]) -> None:
    _atomic_write(
        path,
        lambda handle: json.dump(payload, handle, ensure_ascii=False, sort_keys=True, indent=2),
    )


def _atomic_write(path: Path, write) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, raw_tmp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=f"{path.name}.",
        suffix=".tmp",
    )
    os.close(fd)
    tmp_path = Path(raw_tmp_path)

    try:
        with tmp_path.open("w", encoding="utf-8") as handle:
            write(handle)
        tmp_path.replace(path)
    except Exception:
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)
        raise
