"""pipeline.build.orchestrator

Build Orchestrator: drive the target project's own build twice.

1. Uninstrumented, as a correctness gate. A failure here is a broken project,
   not an instrumentation problem, so it raises :class:`BuildError` and no
   instrumented attempt is ever made.
2. Instrumented with the primary strategy.
3. If (2) fails or records nothing, hand over to the
   :class:`~pipeline.build.fallback.FallbackController`.

Every attempt is reported through ``on_attempt`` *before* any error leaves
this module, so the run history is complete for post-mortem.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Mapping, Optional, Sequence, Tuple

from pipeline.config import PipelineConfig
from pipeline.errors import BuildError, StageTimeoutError
from pipeline.execution.model import CommandRunner, ToolExecution, ToolInvocation
from pipeline.execution.record import write_step_log
from pipeline.layout import RunPaths
from pipeline.models import (
    BuildAttempt,
    BuildMode,
    CompilationRecord,
    EnvironmentSnapshot,
    StepResult,
    now_iso,
)
from tools.bear import BEAR_FALLBACKS
from tools.blight import BLIGHT_FALLBACKS, blight_exec_command, embed_commands_env
from tools.core_cmd import command_str, which_optional
from tools.io import copy_atomic

from .compilation_record import load_compilation_record
from .fallback import FallbackController, Transition
from .strategies import InstrumentationStrategy, resolve_strategy_pair

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildOutcome:
    record: CompilationRecord
    strategy: str
    attempts: Tuple[BuildAttempt, ...]
    transitions: Tuple[str, ...] = field(default_factory=tuple)


def format_build_command(template: Sequence[str], jobs: int) -> List[str]:
    return [str(part).replace("{jobs}", str(int(jobs))) for part in template]


class BuildOrchestrator:
    def __init__(
        self,
        *,
        project_dir: Path,
        snapshot: EnvironmentSnapshot,
        config: PipelineConfig,
        paths: RunPaths,
        runner: CommandRunner,
        on_attempt: Optional[Callable[[BuildAttempt], None]] = None,
        on_transition: Optional[Callable[[Transition], None]] = None,
    ) -> None:
        self.project_dir = Path(project_dir)
        self.snapshot = snapshot
        self.config = config
        self.paths = paths
        self.runner = runner
        self._on_attempt = on_attempt
        self._on_transition = on_transition
        self.attempts: List[BuildAttempt] = []
        self.primary, self.fallback = resolve_strategy_pair(config, paths)

    # ------------------------------------------------------------------
    # Single attempt
    # ------------------------------------------------------------------

    def _execute(
        self, step: str, cmd: List[str], env_overrides: Optional[Mapping[str, str]] = None
    ) -> Tuple[Optional[ToolExecution], bool, str, str]:
        """Run one build-shaped command; returns (execution, timed_out, started, finished)."""
        inv = ToolInvocation(
            step=step,
            cmd=cmd,
            cwd=self.project_dir,
            env=self.snapshot.as_environ(env_overrides),
            timeout_seconds=self.config.timeouts.build,
        )
        started = now_iso()
        try:
            res = self.runner(inv)
        except StageTimeoutError as e:
            logger.error("%s: %s", step, e)
            return None, True, started, now_iso()
        write_step_log(self.paths, step, res)
        return res, False, res.started, res.finished

    def run_build(
        self,
        mode: BuildMode,
        jobs: int,
        *,
        strategy: Optional[InstrumentationStrategy] = None,
    ) -> BuildAttempt:
        build_cmd = format_build_command(self.config.build_command, jobs)
        record_out: Optional[Path] = None
        env_overrides = None

        if mode is BuildMode.INSTRUMENTED:
            strategy = strategy or self.primary
            record_out = self.paths.partial_record_path(strategy.key)
            if record_out.exists():
                record_out.unlink()
            cmd, env_overrides = strategy.wrap(build_cmd, record_out=record_out)
            step = f"build_instrumented_{strategy.key}"
        else:
            strategy = None
            cmd = build_cmd
            step = "build_uninstrumented"

        print(f"🔨 {step}: {command_str(cmd)}")
        res, timed_out, started, finished = self._execute(step, cmd, env_overrides)

        attempt = BuildAttempt(
            mode=mode,
            strategy=strategy.key if strategy else None,
            exit_code=res.exit_code if res is not None else -9,
            duration_seconds=res.elapsed_seconds if res is not None else self.config.timeouts.build,
            command=command_str(cmd),
            started=started,
            finished=finished,
            record_path=record_out if record_out is not None and record_out.exists() else None,
            timed_out=timed_out,
            log_path=self.paths.log_path(step) if res is not None else None,
        )
        self.attempts.append(attempt)
        if self._on_attempt is not None:
            self._on_attempt(attempt)

        status = "ok" if attempt.ok else ("timed out" if timed_out else f"exit {attempt.exit_code}")
        print(f"   -> {status} ({attempt.duration_seconds:.1f}s)")
        return attempt

    # ------------------------------------------------------------------
    # Two-pass policy
    # ------------------------------------------------------------------

    def _promote_record(self, attempt: BuildAttempt) -> Optional[CompilationRecord]:
        """Make a non-empty attempt record the current one.

        The attempt keeps its own file; the current record is replaced atomically.
        """
        if not attempt.ok or attempt.record_path is None:
            return None
        record = load_compilation_record(attempt.record_path)
        if record.is_empty:
            logger.warning("%s produced an empty compilation record", attempt.strategy)
            return None
        copy_atomic(attempt.record_path, self.paths.record_path)
        return CompilationRecord(entries=record.entries, path=self.paths.record_path)

    def _attempt_with_record(
        self, strategy: InstrumentationStrategy, jobs: int
    ) -> Tuple[BuildAttempt, Optional[CompilationRecord]]:
        attempt = self.run_build(BuildMode.INSTRUMENTED, jobs, strategy=strategy)
        return attempt, self._promote_record(attempt)

    def build_with_record(self, jobs: int) -> BuildOutcome:
        gate = self.run_build(BuildMode.UNINSTRUMENTED, jobs)
        if not gate.ok:
            why = "timed out" if gate.timed_out else f"exit code {gate.exit_code}"
            raise BuildError(
                f"uninstrumented build failed ({why}); see {gate.log_path or 'logs/'}",
                attempts=self.attempts,
            )

        primary, record = self._attempt_with_record(self.primary, jobs)
        if record is not None:
            return BuildOutcome(record=record, strategy=self.primary.key, attempts=tuple(self.attempts))

        if not primary.ok:
            reason = "timed out" if primary.timed_out else f"exit code {primary.exit_code}"
        else:
            reason = "empty compilation record"
        print(f"⚠️  {self.primary.key} recording failed ({reason}); trying {self.fallback.key}")

        controller = FallbackController(
            lambda: self._attempt_with_record(self.fallback, jobs),
            on_transition=self._on_transition,
        )
        record = controller.recover(f"{self.primary.key}: {reason}")
        return BuildOutcome(
            record=record,
            strategy=self.fallback.key,
            attempts=tuple(self.attempts),
            transitions=tuple(t.describe() for t in controller.transitions),
        )

    # ------------------------------------------------------------------
    # Optional / diagnostic steps (never fatal)
    # ------------------------------------------------------------------

    def embed_commands(self, jobs: int) -> StepResult:
        """Re-run the build with blight's EmbedCommands action."""
        out_dir = self.paths.embedded_commands_dir
        out_dir.mkdir(parents=True, exist_ok=True)
        cmd = blight_exec_command(
            self.config.tools.blight_exec,
            wrapped_cmd=format_build_command(self.config.build_command, jobs),
            action="EmbedCommands",
        )
        print(f"📎 embed_commands: {command_str(cmd)}")
        res, timed_out, started, finished = self._execute("embed_commands", cmd, embed_commands_env(out_dir))
        if res is None:
            return StepResult("embed_commands", False, "timed out", started, finished)
        detail = str(out_dir) if res.ok else f"exit code {res.exit_code}: {res.output_tail(5)}"
        return StepResult("embed_commands", res.ok, detail, started, finished)

    def probe_toolchain(self) -> List[StepResult]:
        """``which ar/ranlib/ld`` style checks against the snapshot PATH.

        The recording wrappers are probed too, with their usual install
        locations as fallbacks. An empty ``probe_tools`` disables probing.
        """
        search_path = self.snapshot.variables.get("PATH")
        wanted: List[Tuple[str, Optional[List[str]]]] = [(name, None) for name in self.config.probe_tools]
        if self.config.probe_tools:
            wanted += [
                (self.config.tools.blight_exec, BLIGHT_FALLBACKS),
                (self.config.tools.bear, BEAR_FALLBACKS),
            ]

        results: List[StepResult] = []
        for name, fallbacks in wanted:
            t = now_iso()
            found = which_optional(name, fallbacks, search_path=search_path)
            results.append(
                StepResult(f"probe:{name}", found is not None, found or "not found on PATH", t, now_iso())
            )
            if found is None:
                logger.warning("toolchain probe: %s not found on snapshot PATH", name)
        return results
