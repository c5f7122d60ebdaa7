"""pipeline.orchestrator

The run driver: snapshot -> build (with fallback) -> index -> queries.

Design principles
-----------------
- Keep the CLI thin: parse args, build a :class:`RunRequest`, call
  :func:`run_pipeline`.
- Stages are sequential and each one consumes the previous stage's output.
- Stage 1-4 errors abort the run. They are caught here and only here: the run
  is marked failed, the error type and message are recorded, and the manifest
  is written. Partial artifacts are left in place for post-mortem.
- Query failures never abort the run; they are reported per query.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

from pipeline.build import BuildOrchestrator
from pipeline.config import PipelineConfig
from pipeline.environment import capture, save_snapshot, write_env_file
from pipeline.errors import ConfigError, PipelineError
from pipeline.execution.model import CommandRunner
from pipeline.execution.record import write_run_manifest
from pipeline.execution.runner import SubprocessRunner
from pipeline.index import IndexBuilder
from pipeline.layout import RunPaths, ensure_run_dirs, get_run_paths, new_run_id
from pipeline.models import Artifact, PipelineRun, RunStatus, StepResult, now_iso
from pipeline.queries import QueryRunner, select_queries

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


@dataclass(frozen=True)
class RunRequest:
    """Inputs for one pipeline run (everything the CLI resolved)."""

    project_dir: Path
    out_dir: Path
    config: PipelineConfig = field(default_factory=PipelineConfig)
    jobs: Optional[int] = None

    # None -> whole catalog; () -> no queries.
    query_names: Optional[Sequence[str]] = None
    entity: Optional[str] = None
    reachable_from: Optional[str] = None


def resolve_jobs(req: RunRequest) -> int:
    return int(req.jobs or req.config.jobs or os.cpu_count() or 1)


def exit_code_for(run: PipelineRun) -> int:
    """0 iff build and index succeeded; query failures do not count."""
    if run.status is RunStatus.SUCCEEDED:
        return EXIT_OK
    if run.error_type == ConfigError.__name__:
        return EXIT_USAGE
    return EXIT_FAILED


def _print_summary(run: PipelineRun, paths: RunPaths) -> None:
    print("\n" + "=" * 60)
    if run.status is RunStatus.SUCCEEDED:
        print(f"✅ Run {run.run_id} succeeded")
    else:
        print(f"❌ Run {run.run_id} failed: {run.error_type}: {run.error_message}")
    if run.index is not None:
        cached = " (cached)" if run.index.cached else ""
        print(f"  Index     : {run.index.path}{cached}")
    if run.query_outcomes:
        ok = sum(1 for o in run.query_outcomes.values() if o.ok)
        print(f"  Queries   : {ok}/{len(run.query_outcomes)} succeeded")
        for name, err in run.query_failures().items():
            print(f"    - {name}: {err}")
    print(f"  Manifest  : {paths.manifest_path}")


def run_pipeline(req: RunRequest, *, runner: Optional[CommandRunner] = None) -> PipelineRun:
    """Execute one full run and return its :class:`PipelineRun` record."""

    runner = runner or SubprocessRunner()
    config = req.config
    paths = get_run_paths(req.out_dir)
    ensure_run_dirs(paths)

    run = PipelineRun(
        run_id=new_run_id(),
        project_dir=Path(req.project_dir).expanduser().resolve(),
        out_dir=paths.out_dir,
    )
    jobs = resolve_jobs(req)

    print(f"🚀 Native index pipeline: {run.project_dir}")
    print(f"  Output    : {paths.out_dir}")
    print(f"  Jobs      : {jobs}")

    try:
        if not run.project_dir.is_dir():
            raise ConfigError(f"project directory not found: {run.project_dir}")

        # Resolve queries up front so an unknown name fails before a long build.
        queries = select_queries(
            req.query_names,
            extra=config.queries,
            entity=req.entity,
            reachable_from=req.reachable_from,
        )

        print("\n🧭 Capturing environment snapshot")
        started = now_iso()
        snapshot = capture(
            runner=runner,
            compiler=config.tools.compiler,
            extra=config.extra_env,
            timeout_seconds=config.timeouts.probe,
        )
        run.snapshot = snapshot
        save_snapshot(snapshot, paths.env_snapshot_path)
        write_env_file(snapshot, paths.env_file_path)
        run.add_step(StepResult("snapshot", True, snapshot.resource_dir, started, now_iso()))

        builder = BuildOrchestrator(
            project_dir=run.project_dir,
            snapshot=snapshot,
            config=config,
            paths=paths,
            runner=runner,
            on_attempt=run.add_attempt,
            on_transition=lambda t: run.fallback_transitions.append(t.describe()),
        )
        for probe in builder.probe_toolchain():
            run.add_step(probe)

        print("\n🏗️  Building project")
        outcome = builder.build_with_record(jobs)
        run.set_record(outcome.record)
        run.add_artifact(
            Artifact(
                name="compile_commands",
                path=outcome.record.path or paths.record_path,
                kind="record",
                producer=f"build:{outcome.strategy}",
            )
        )
        print(f"  Recorded {len(outcome.record)} compile commands via {outcome.strategy}")

        if config.embed_commands:
            step = builder.embed_commands(jobs)
            if not step.ok:
                logger.warning("embed_commands failed: %s", step.detail)
            run.add_step(step)

        print("\n🗂️  Building index")
        run.index = IndexBuilder(config=config, paths=paths, runner=runner).build(outcome.record, snapshot)

        if queries:
            print()
            outcomes = QueryRunner(
                index=run.index,
                paths=paths,
                runner=runner,
                bin_dir=config.tools.multiplier_bin_dir,
                env=snapshot.as_environ(),
                timeout_seconds=config.timeouts.query,
            ).run_all(queries, max_workers=config.query_workers)
            run.query_outcomes = outcomes
            for o in outcomes.values():
                if o.artifact is not None:
                    run.add_artifact(o.artifact)

        run.succeed()
    except PipelineError as e:
        logger.error("%s stage failed: %s", e.stage, e)
        run.fail(e)
    except Exception as e:
        # Not an expected stage failure: record it, then let it surface.
        run.fail(e)
        raise
    finally:
        write_run_manifest(run, paths)

    _print_summary(run, paths)
    return run
