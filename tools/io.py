#!/usr/bin/env python3
"""tools/io.py

Single source of truth for tiny filesystem helpers used across the pipeline.

Why this file exists
--------------------
Every stage persists something (snapshot, compilation record, index receipt,
query artifacts, run manifest). If each stage grew its own ``write_json`` the
formatting would drift and a crash mid-write could leave a half-written file
that a later stage happily consumes.

Design
------
- Writes are atomic: temp file in the target directory, ``fsync``, then
  ``os.replace``.
- JSON formatting is stable (sorted keys, indent 2, trailing newline) so
  artifacts diff cleanly between runs.
- This module contains ONLY filesystem IO.
"""

from __future__ import annotations

import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Optional


def _atomic_write_text(
    path: Path,
    write_fn,
    *,
    encoding: str = "utf-8",
    newline: Optional[str] = None,
) -> None:
    """Write a file atomically by writing to a temp file and os.replace()."""

    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(prefix=f"{p.name}.", suffix=".tmp", dir=str(p.parent))
    tmp_path = Path(tmp_name)

    try:
        with os.fdopen(fd, "w", encoding=encoding, newline=newline) as f:
            write_fn(f)
            f.flush()
            os.fsync(f.fileno())

        os.replace(tmp_path, p)
    finally:
        # If os.replace fails, best-effort cleanup of the temp file.
        try:
            if tmp_path.exists():
                tmp_path.unlink()
        except OSError:
            pass


def write_text_atomic(path: Path, text: str, *, encoding: str = "utf-8") -> None:
    """Write UTF-8 text atomically."""

    def _write(f) -> None:
        f.write(text)

    _atomic_write_text(Path(path), _write, encoding=encoding)


def write_json_atomic(
    path: Path,
    data: Any,
    *,
    indent: int = 2,
    sort_keys: bool = True,
    ensure_ascii: bool = False,
    encoding: str = "utf-8",
) -> None:
    """Write JSON atomically with stable formatting."""

    def _write(f) -> None:
        json.dump(data, f, indent=indent, sort_keys=sort_keys, ensure_ascii=ensure_ascii)
        f.write("\n")

    _atomic_write_text(Path(path), _write, encoding=encoding)


def read_json(path: Path, *, encoding: str = "utf-8") -> Any:
    """Read JSON from disk (UTF-8)."""
    with Path(path).open("r", encoding=encoding) as f:
        return json.load(f)


def replace_atomic(src: Path, dst: Path) -> Path:
    """Promote a fully written file (or directory) to its final name."""
    dst = Path(dst)
    dst.parent.mkdir(parents=True, exist_ok=True)
    os.replace(str(src), str(dst))
    return dst


def copy_atomic(src: Path, dst: Path) -> Path:
    """Copy *src* over *dst* so readers only ever see the old or new file."""
    dst = Path(dst)
    dst.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f"{dst.name}.", suffix=".tmp", dir=str(dst.parent))
    os.close(fd)
    try:
        shutil.copyfile(str(src), tmp_name)
        os.replace(tmp_name, str(dst))
    finally:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
    return dst
