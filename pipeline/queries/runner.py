"""pipeline.queries.runner

Analysis Query Runner: execute independent read-only queries against a built
index.

Rules
-----
- Queries run on a bounded thread pool; the index is read-only so they share it.
- One query's failure (bad params, unresolvable entity, tool exit, timeout) is
  captured as a :class:`~pipeline.errors.QueryError` in its own slot. Siblings
  are unaffected and nothing is raised to the caller.
- The result mapping preserves the order of the input queries.
- An artifact is written (atomically) only when its query succeeded, so a
  failed re-run never clobbers a previous good artifact.
"""

from __future__ import annotations

import concurrent.futures
import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pipeline.errors import QueryError, StageTimeoutError
from pipeline.execution.model import CommandRunner, ToolInvocation
from pipeline.execution.record import write_step_log
from pipeline.layout import RunPaths
from pipeline.models import AnalysisQuery, Artifact, IndexDatabase, QueryOutcome
from tools.io import write_text_atomic
from tools.multiplier import query_command, tool_path

from .entities import EntityResolutionError, EntityResolver
from .registry import QueryKind, entity_keys, get_query_kind

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4


class QueryRunner:
    def __init__(
        self,
        *,
        index: IndexDatabase,
        paths: RunPaths,
        runner: CommandRunner,
        bin_dir: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
        timeout_seconds: float = 0.0,
        resolver: Optional[EntityResolver] = None,
    ) -> None:
        self.index = index
        self.paths = paths
        self.runner = runner
        self.bin_dir = bin_dir
        self.env = dict(env) if env is not None else None
        self.timeout_seconds = timeout_seconds
        self.resolver = resolver or EntityResolver(
            db=index.path,
            runner=runner,
            symbol_binary=tool_path(bin_dir, get_query_kind("symbol_search").binary),
            env=self.env,
            cwd=paths.out_dir,
            timeout_seconds=timeout_seconds,
        )

    # ------------------------------------------------------------------
    # One query
    # ------------------------------------------------------------------

    def _resolve_entities(self, kind: QueryKind, params: Mapping[str, Any]) -> Dict[str, Any]:
        resolved = dict(params)
        for slot in kind.entity_slots:
            id_key, name_key = entity_keys(slot)
            if resolved.get(id_key) is not None:
                resolved.pop(name_key, None)
                continue
            name = resolved.pop(name_key, None)
            if name is None or not str(name).strip():
                if slot in kind.required_entities:
                    raise ValueError(f"{kind.name} needs {id_key!r} or {name_key!r}")
                continue
            resolved[id_key] = self.resolver.resolve(str(name))
        return resolved

    def run_one(self, query: AnalysisQuery) -> QueryOutcome:
        t0 = time.monotonic()
        resolved: Dict[str, Any] = {}

        def _failed(message: str, exit_code: Optional[int] = None) -> QueryOutcome:
            err = QueryError(query.name, message, exit_code=exit_code)
            logger.warning("query %s failed: %s", query.name, message)
            print(f"   ❌ {query.name}: {message.splitlines()[0] if message else 'failed'}")
            return QueryOutcome(
                query=query,
                error=err,
                resolved_params=resolved,
                duration_seconds=time.monotonic() - t0,
            )

        try:
            kind = get_query_kind(query.kind)
        except KeyError as e:
            return _failed(str(e.args[0]))

        try:
            resolved = self._resolve_entities(kind, query.params)
            flags = kind.build_flags(resolved)
        except (ValueError, EntityResolutionError, StageTimeoutError) as e:
            return _failed(str(e))

        inv = ToolInvocation(
            step=f"query_{query.name}",
            cmd=query_command(tool_path(self.bin_dir, kind.binary), db=self.index.path, flags=flags),
            cwd=self.paths.out_dir,
            env=self.env,
            timeout_seconds=self.timeout_seconds,
        )
        try:
            res = self.runner(inv)
        except StageTimeoutError as e:
            return _failed(str(e))
        write_step_log(self.paths, inv.step, res)

        if not res.ok:
            return _failed(f"{kind.binary} exited {res.exit_code}: {res.output_tail(5)}", res.exit_code)

        out_path = self.paths.artifact_path(query.artifact_name, kind.ext)
        try:
            write_text_atomic(out_path, res.stdout)
        except OSError as e:
            return _failed(f"could not write artifact {out_path}: {e}")

        artifact = Artifact(
            name=query.artifact_name,
            path=out_path,
            kind="graph" if kind.ext == "dot" else "text",
            producer=query.name,
        )
        print(f"   ✅ {query.name} -> {out_path}")
        return QueryOutcome(
            query=query,
            artifact=artifact,
            resolved_params=resolved,
            duration_seconds=time.monotonic() - t0,
        )

    # ------------------------------------------------------------------
    # Many queries
    # ------------------------------------------------------------------

    def _reserve_artifacts(self, queries: Sequence[AnalysisQuery]) -> Dict[int, QueryOutcome]:
        """Reject later queries whose artifact path collides with an earlier one."""
        rejected: Dict[int, QueryOutcome] = {}
        claimed: Dict[Path, str] = {}
        for i, q in enumerate(queries):
            try:
                ext = get_query_kind(q.kind).ext
            except KeyError:
                continue
            p = self.paths.artifact_path(q.artifact_name, ext)
            owner = claimed.get(p)
            if owner is not None:
                rejected[i] = QueryOutcome(
                    query=q,
                    error=QueryError(q.name, f"artifact {p.name} is already produced by query {owner!r}"),
                )
                continue
            claimed[p] = q.name
        return rejected

    def run_all(
        self, queries: Sequence[AnalysisQuery], *, max_workers: Optional[int] = None
    ) -> Dict[str, QueryOutcome]:
        if not queries:
            return {}

        names = [q.name for q in queries]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise ValueError(f"duplicate query names: {', '.join(dupes)}")

        slots: List[Optional[QueryOutcome]] = [None] * len(queries)
        for i, outcome in self._reserve_artifacts(queries).items():
            logger.warning("query %s rejected: %s", queries[i].name, outcome.error)
            slots[i] = outcome

        pending: List[Tuple[int, AnalysisQuery]] = [(i, q) for i, q in enumerate(queries) if slots[i] is None]
        workers = max(1, min(int(max_workers or DEFAULT_MAX_WORKERS), len(pending) or 1))
        print(f"🔎 Running {len(pending)} queries ({workers} workers)")

        with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
            future_to_index = {executor.submit(self.run_one, q): i for i, q in pending}
            for future in concurrent.futures.as_completed(future_to_index):
                i = future_to_index[future]
                try:
                    slots[i] = future.result()
                except Exception as e:
                    # Unexpected errors (a runner bug, an OS error) stay with their query.
                    logger.exception("query %s crashed", queries[i].name)
                    slots[i] = QueryOutcome(
                        query=queries[i],
                        error=QueryError(queries[i].name, f"{type(e).__name__}: {e}"),
                    )

        return {q.name: outcome for q, outcome in zip(queries, slots) if outcome is not None}


def run_all(
    index: IndexDatabase,
    queries: Sequence[AnalysisQuery],
    *,
    paths: RunPaths,
    runner: CommandRunner,
    bin_dir: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    timeout_seconds: float = 0.0,
    max_workers: Optional[int] = None,
) -> Dict[str, QueryOutcome]:
    """Run *queries* against *index*; see :class:`QueryRunner`."""
    return QueryRunner(
        index=index,
        paths=paths,
        runner=runner,
        bin_dir=bin_dir,
        env=env,
        timeout_seconds=timeout_seconds,
    ).run_all(queries, max_workers=max_workers)
