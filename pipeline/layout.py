"""pipeline.layout

Filesystem layout for one pipeline run.

Why this exists
---------------
Stages hand artifacts to each other by explicit path, never through the
working directory. Computing those paths in one place keeps the layout
predictable for reviewers and for anyone extracting artifacts out of a
container after the fact.

Run layout
----------

  <out>/
    run_manifest.json                 # <-- OPEN THIS (status, attempts, errors)
    env_snapshot.json                 # canonical snapshot (round-trips)
    env_vars.txt                      # KEY=VALUE file for the indexing engine
    compile_commands.json             # current compilation record
    compile_commands.filtered.json    # record minus vanished sources
    blight_journal.jsonl
    blight_record.jsonl
    embedded_commands/                # optional EmbedCommands output
    index/
      <key>.db                        # persisted index (content-keyed)
      <key>.json                      # index receipt
    workspace/                        # indexing engine scratch space
    artifacts/
      <query>.txt | <query>.dot
    logs/
      <step>.log
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

_SAFE_NAME = re.compile(r"[^a-zA-Z0-9_.-]+")


def safe_name(value: str) -> str:
    """Sanitize a string so it can be used as a file name segment.

    - Reject dot-segments that enable traversal ('..', '.')
    - Avoid leading dots ('.env') to reduce hidden-path surprises
    """
    v = (value or "").strip()
    v = _SAFE_NAME.sub("_", v)
    v = re.sub(r"_+", "_", v).strip("_")
    if v in {".", ".."}:
        return "unknown"
    v = v.lstrip(".")
    return v or "unknown"


def new_run_id(now: Optional[datetime] = None) -> str:
    """Return a sortable UTC timestamp id like: 20260104T013000Z."""
    dt = now or datetime.now(timezone.utc)
    return dt.strftime("%Y%m%dT%H%M%SZ")


@dataclass(frozen=True)
class RunPaths:
    """Computed filesystem paths for one pipeline run."""

    out_dir: Path

    manifest_path: Path
    env_snapshot_path: Path
    env_file_path: Path
    record_path: Path
    filtered_record_path: Path
    blight_journal_path: Path
    blight_record_path: Path
    embedded_commands_dir: Path

    index_dir: Path
    workspace_dir: Path
    artifact_dir: Path
    logs_dir: Path

    def index_db_path(self, key: str) -> Path:
        return self.index_dir / f"{key}.db"

    def index_receipt_path(self, key: str) -> Path:
        return self.index_dir / f"{key}.json"

    def artifact_path(self, name: str, ext: str) -> Path:
        return self.artifact_dir / f"{safe_name(name)}.{ext.lstrip('.')}"

    def log_path(self, step: str) -> Path:
        return self.logs_dir / f"{safe_name(step)}.log"

    def partial_record_path(self, strategy: str) -> Path:
        return self.out_dir / f"compile_commands.{safe_name(strategy)}.partial.json"


def get_run_paths(out_dir: Union[str, Path]) -> RunPaths:
    out = Path(out_dir).expanduser().resolve()
    return RunPaths(
        out_dir=out,
        manifest_path=out / "run_manifest.json",
        env_snapshot_path=out / "env_snapshot.json",
        env_file_path=out / "env_vars.txt",
        record_path=out / "compile_commands.json",
        filtered_record_path=out / "compile_commands.filtered.json",
        blight_journal_path=out / "blight_journal.jsonl",
        blight_record_path=out / "blight_record.jsonl",
        embedded_commands_dir=out / "embedded_commands",
        index_dir=out / "index",
        workspace_dir=out / "workspace",
        artifact_dir=out / "artifacts",
        logs_dir=out / "logs",
    )


def ensure_run_dirs(paths: RunPaths) -> None:
    for d in (paths.out_dir, paths.index_dir, paths.artifact_dir, paths.logs_dir):
        d.mkdir(parents=True, exist_ok=True)
