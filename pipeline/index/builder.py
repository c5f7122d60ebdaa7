"""pipeline.index.builder

Build the code index from a compilation record and an environment snapshot.

- Entries whose source file has disappeared since the build (generated then
  removed, temp files) are dropped with one warning each.
- Nothing left to index is fatal (:class:`IndexBuildError`).
- The index is content-keyed on ``(record hash, snapshot hash)``. When
  ``index/<key>.db`` and its receipt already exist the engine is not invoked.
- The engine writes to a temp name; only a successful run is renamed into
  place, so a crash never leaves a half-built index under a valid key.
"""

from __future__ import annotations

import hashlib
import logging
import shutil
from pathlib import Path
from typing import List, Tuple

from pipeline.config import PipelineConfig
from pipeline.environment import write_env_file
from pipeline.errors import IndexBuildError, StageTimeoutError
from pipeline.execution.model import CommandRunner, ToolInvocation
from pipeline.execution.record import write_step_log
from pipeline.layout import RunPaths
from pipeline.models import CompilationRecord, CompileEntry, EnvironmentSnapshot, IndexDatabase, now_iso
from pipeline.build.compilation_record import write_compilation_record
from tools.io import read_json, replace_atomic, write_json_atomic
from tools.multiplier import index_command, tool_path

logger = logging.getLogger(__name__)


def filter_existing_entries(record: CompilationRecord) -> Tuple[CompilationRecord, List[str]]:
    """Split *record* into (entries whose source exists, missing source paths)."""
    kept: List[CompileEntry] = []
    missing: List[str] = []
    for entry in record.entries:
        src = entry.source_path()
        if src.is_file():
            kept.append(entry)
        else:
            logger.warning("source file no longer exists, skipping record entry: %s", src)
            missing.append(str(src))
    return CompilationRecord(entries=tuple(kept), path=record.path), missing


def index_key(record_hash: str, snapshot_hash: str) -> str:
    return hashlib.sha256(f"{record_hash}:{snapshot_hash}".encode("utf-8")).hexdigest()[:32]


def _remove_path(p: Path) -> None:
    if p.is_dir():
        shutil.rmtree(p)
    elif p.exists():
        p.unlink()


class IndexBuilder:
    def __init__(self, *, config: PipelineConfig, paths: RunPaths, runner: CommandRunner) -> None:
        self.config = config
        self.paths = paths
        self.runner = runner

    def _cached(self, key: str, record_hash: str, snapshot_hash: str, skipped: List[str]) -> IndexDatabase | None:
        db_path = self.paths.index_db_path(key)
        receipt_path = self.paths.index_receipt_path(key)
        if not (db_path.exists() and receipt_path.exists()):
            return None
        try:
            receipt = read_json(receipt_path)
        except (OSError, ValueError) as e:
            logger.warning("ignoring unreadable index receipt %s: %s", receipt_path, e)
            return None
        if receipt.get("record_hash") != record_hash or receipt.get("snapshot_hash") != snapshot_hash:
            return None
        return IndexDatabase(
            path=db_path,
            key=key,
            record_hash=record_hash,
            snapshot_hash=snapshot_hash,
            entries_indexed=int(receipt.get("entries_indexed") or 0),
            skipped_files=tuple(skipped),
            cached=True,
        )

    def build(self, record: CompilationRecord, snapshot: EnvironmentSnapshot) -> IndexDatabase:
        filtered, skipped = filter_existing_entries(record)
        if filtered.is_empty:
            raise IndexBuildError(
                f"nothing to index: all {len(record)} record entries reference missing source files"
            )

        record_hash = filtered.content_hash()
        snapshot_hash = snapshot.content_hash()
        key = index_key(record_hash, snapshot_hash)

        cached = self._cached(key, record_hash, snapshot_hash, skipped)
        if cached is not None:
            logger.info("index %s is up to date; skipping mx-index", key)
            print(f"♻️  Reusing index {cached.path.name} ({cached.entries_indexed} entries)")
            return cached

        self.paths.index_dir.mkdir(parents=True, exist_ok=True)
        self.paths.workspace_dir.mkdir(parents=True, exist_ok=True)
        write_compilation_record(filtered, self.paths.filtered_record_path)
        write_env_file(snapshot, self.paths.env_file_path)

        db_path = self.paths.index_db_path(key)
        tmp_db = self.paths.index_dir / f".{key}.db.partial"
        _remove_path(tmp_db)

        mx_index = tool_path(self.config.tools.multiplier_bin_dir, "mx-index")
        inv = ToolInvocation(
            step="index",
            cmd=index_command(
                mx_index,
                db=tmp_db,
                target=self.paths.filtered_record_path,
                workspace=self.paths.workspace_dir,
                env_file=self.paths.env_file_path,
                show_progress=self.config.show_progress,
            ),
            cwd=self.paths.out_dir,
            env=snapshot.as_environ(),
            timeout_seconds=self.config.timeouts.index,
        )
        print(f"🗂️  Indexing {len(filtered)} entries ({len(skipped)} skipped)")
        try:
            res = self.runner(inv)
        except StageTimeoutError:
            _remove_path(tmp_db)
            raise
        write_step_log(self.paths, "index", res)

        if not res.ok:
            _remove_path(tmp_db)
            raise IndexBuildError(f"mx-index failed with exit code {res.exit_code}: {res.output_tail()}")
        if not tmp_db.exists():
            raise IndexBuildError(f"mx-index exited 0 but wrote no database at {tmp_db}")

        _remove_path(db_path)
        replace_atomic(tmp_db, db_path)

        index = IndexDatabase(
            path=db_path,
            key=key,
            record_hash=record_hash,
            snapshot_hash=snapshot_hash,
            entries_indexed=len(filtered),
            skipped_files=tuple(skipped),
            cached=False,
        )
        write_json_atomic(
            self.paths.index_receipt_path(key),
            {**index.to_dict(), "built_at": now_iso(), "command": res.command_str},
        )

        if self.config.cleanup_workspace:
            shutil.rmtree(self.paths.workspace_dir, ignore_errors=True)

        return index
