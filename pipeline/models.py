"""pipeline.models

Data structures handed between pipeline stages.

Why this exists
---------------
Each stage consumes exactly what the previous one produced: a snapshot, a
compilation record, an index. Passing those around as loose dicts and paths
makes it too easy for a stage to reach into the live process environment or
re-read a file another stage is still writing. These dataclasses are the
explicit vocabulary for that hand-off.

Everything except :class:`PipelineRun` is frozen.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple


def now_iso() -> str:
    """Return current UTC time as ISO-8601 string."""

    return datetime.now(timezone.utc).isoformat()


def _sha256_json(data: Any) -> str:
    blob = json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(blob.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EnvironmentSnapshot:
    """Resolved process environment plus toolchain search paths.

    ``variables`` keeps insertion order and is exposed read-only.
    """

    variables: Mapping[str, str]
    resource_dir: str
    include_paths: Tuple[str, ...] = ()
    compiler: str = "clang"
    captured_at: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "variables", MappingProxyType(dict(self.variables)))
        object.__setattr__(self, "include_paths", tuple(self.include_paths))

    @property
    def search_paths(self) -> Tuple[str, ...]:
        """Resource include dir first, then the default include-search list."""
        first = f"{self.resource_dir.rstrip('/')}/include"
        return (first, *[p for p in self.include_paths if p != first])

    def derived_variables(self) -> Dict[str, str]:
        """Variables the indexing engine needs to see the build's headers."""
        return {
            "LIBRARY_PATH": self.resource_dir,
            "CPATH": ":".join(self.search_paths),
            "CPPFLAGS": "-nostdinc -nobuiltininc",
        }

    def as_environ(self, overrides: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        """A fresh dict suitable for ``subprocess`` ``env=``."""
        env = dict(self.variables)
        if overrides:
            env.update({str(k): str(v) for k, v in overrides.items()})
        return env

    def to_dict(self) -> Dict[str, Any]:
        return {
            "compiler": self.compiler,
            "captured_at": self.captured_at,
            "resource_dir": self.resource_dir,
            "include_paths": list(self.include_paths),
            # list of pairs keeps the original order through sort_keys=True dumps
            "variables": [[k, v] for k, v in self.variables.items()],
        }

    @staticmethod
    def from_dict(raw: Mapping[str, Any]) -> "EnvironmentSnapshot":
        pairs = raw.get("variables") or []
        if isinstance(pairs, Mapping):
            variables = {str(k): str(v) for k, v in pairs.items()}
        else:
            variables = {str(k): str(v) for k, v in pairs}
        return EnvironmentSnapshot(
            variables=variables,
            resource_dir=str(raw.get("resource_dir") or ""),
            include_paths=tuple(str(p) for p in raw.get("include_paths") or ()),
            compiler=str(raw.get("compiler") or "clang"),
            captured_at=raw.get("captured_at"),
        )

    def content_hash(self) -> str:
        # captured_at is provenance, not content.
        d = self.to_dict()
        d.pop("captured_at", None)
        return _sha256_json(d)


# ---------------------------------------------------------------------------
# Build
# ---------------------------------------------------------------------------


class BuildMode(str, Enum):
    UNINSTRUMENTED = "uninstrumented"
    INSTRUMENTED = "instrumented"


@dataclass(frozen=True)
class BuildAttempt:
    """One execution of the target project's build."""

    mode: BuildMode
    exit_code: int
    duration_seconds: float
    command: str
    started: str
    finished: str
    strategy: Optional[str] = None
    record_path: Optional[Path] = None
    timed_out: bool = False
    log_path: Optional[Path] = None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "strategy": self.strategy,
            "exit_code": self.exit_code,
            "ok": self.ok,
            "timed_out": self.timed_out,
            "duration_seconds": round(self.duration_seconds, 3),
            "command": self.command,
            "started": self.started,
            "finished": self.finished,
            "record_path": str(self.record_path) if self.record_path else None,
            "log_path": str(self.log_path) if self.log_path else None,
        }


@dataclass(frozen=True)
class CompileEntry:
    """One compiler invocation captured during an instrumented build."""

    program: str
    arguments: Tuple[str, ...]
    directory: str
    file: str
    output: Optional[str] = None

    def source_path(self) -> Path:
        p = Path(self.file)
        return p if p.is_absolute() else Path(self.directory) / p

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "directory": self.directory,
            "file": self.file,
            "arguments": [self.program, *self.arguments],
        }
        if self.output:
            d["output"] = self.output
        return d


@dataclass(frozen=True)
class CompilationRecord:
    entries: Tuple[CompileEntry, ...]
    path: Optional[Path] = None

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def is_empty(self) -> bool:
        return not self.entries

    def source_files(self) -> List[str]:
        return [str(e.source_path()) for e in self.entries]

    def to_list(self) -> List[Dict[str, Any]]:
        return [e.to_dict() for e in self.entries]

    def content_hash(self) -> str:
        # Parallel builds reorder entries; order must not change the identity.
        rows = sorted(_sha256_json(e.to_dict()) for e in self.entries)
        return _sha256_json(rows)


# ---------------------------------------------------------------------------
# Index + queries
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IndexDatabase:
    path: Path
    key: str
    record_hash: str
    snapshot_hash: str
    entries_indexed: int
    skipped_files: Tuple[str, ...] = ()
    cached: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": str(self.path),
            "key": self.key,
            "record_hash": self.record_hash,
            "snapshot_hash": self.snapshot_hash,
            "entries_indexed": self.entries_indexed,
            "skipped_files": list(self.skipped_files),
            "cached": self.cached,
        }


@dataclass(frozen=True)
class AnalysisQuery:
    """A named, independently schedulable read against the index."""

    name: str
    kind: str
    params: Mapping[str, Any] = field(default_factory=dict)
    artifact: Optional[str] = None

    @property
    def artifact_name(self) -> str:
        return self.artifact or self.name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind,
            "artifact": self.artifact_name,
            "params": dict(self.params),
        }


@dataclass(frozen=True)
class Artifact:
    name: str
    path: Path
    kind: str = "text"
    producer: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "path": str(self.path), "kind": self.kind, "producer": self.producer}


@dataclass(frozen=True)
class QueryOutcome:
    """Exactly one of ``artifact`` / ``error`` is set."""

    query: AnalysisQuery
    artifact: Optional[Artifact] = None
    error: Optional[Any] = None  # pipeline.errors.QueryError
    resolved_params: Mapping[str, Any] = field(default_factory=dict)
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.artifact is not None and self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query": self.query.to_dict(),
            "ok": self.ok,
            "artifact": self.artifact.to_dict() if self.artifact else None,
            "error": str(self.error) if self.error is not None else None,
            "resolved_params": dict(self.resolved_params),
            "duration_seconds": round(self.duration_seconds, 3),
        }


# ---------------------------------------------------------------------------
# Run aggregate
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StepResult:
    """Outcome of a non-fatal step (diagnostic probe, optional pass)."""

    name: str
    ok: bool
    detail: str = ""
    started: Optional[str] = None
    finished: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "ok": self.ok,
            "detail": self.detail,
            "started": self.started,
            "finished": self.finished,
        }


class RunStatus(str, Enum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class PipelineRun:
    """Top-level aggregate for one pipeline execution."""

    run_id: str
    project_dir: Path
    out_dir: Path
    started: str = field(default_factory=now_iso)
    finished: Optional[str] = None
    status: RunStatus = RunStatus.RUNNING

    snapshot: Optional[EnvironmentSnapshot] = None
    attempts: List[BuildAttempt] = field(default_factory=list)
    record: Optional[CompilationRecord] = None
    index: Optional[IndexDatabase] = None
    artifacts: List[Artifact] = field(default_factory=list)
    query_outcomes: Dict[str, QueryOutcome] = field(default_factory=dict)
    history: List[StepResult] = field(default_factory=list)
    fallback_transitions: List[str] = field(default_factory=list)

    error_type: Optional[str] = None
    error_message: Optional[str] = None

    def add_attempt(self, attempt: BuildAttempt) -> None:
        self.attempts.append(attempt)

    def add_step(self, step: StepResult) -> None:
        self.history.append(step)

    def add_artifact(self, artifact: Artifact) -> None:
        # Re-producing an artifact replaces its entry, never duplicates it.
        self.artifacts = [a for a in self.artifacts if a.name != artifact.name]
        self.artifacts.append(artifact)

    def set_record(self, record: CompilationRecord) -> None:
        self.record = record

    def fail(self, exc: BaseException) -> None:
        self.status = RunStatus.FAILED
        self.error_type = type(exc).__name__
        self.error_message = str(exc)
        self.finished = now_iso()

    def succeed(self) -> None:
        self.status = RunStatus.SUCCEEDED
        self.finished = now_iso()

    @property
    def uninstrumented_ok(self) -> bool:
        return any(a.mode is BuildMode.UNINSTRUMENTED and a.ok for a in self.attempts)

    def query_failures(self) -> Dict[str, str]:
        return {n: str(o.error) for n, o in self.query_outcomes.items() if not o.ok}
