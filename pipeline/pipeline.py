"""pipeline.pipeline

This module defines a *single, high-level* object that represents this repo's
primary capabilities.

Why this exists
---------------
The run is implemented across several modules:

- :mod:`pipeline.orchestrator` drives the stages.
- :mod:`pipeline.build`, :mod:`pipeline.index`, :mod:`pipeline.queries` hold
  the stage logic.
- :mod:`pipeline.execution` is the only layer that runs subprocesses.

Callers (CLI, scripts, CI) should not have to wire those together. The
:class:`~pipeline.pipeline.NativeIndexPipeline` facade gives one obvious
entrypoint with a small API:

- ``run(req)``: execute a full run, return the :class:`PipelineRun`
- ``run_exit_code(req)``: same, mapped to a process exit code
- ``list_queries(...)``: the effective query catalog
"""

from __future__ import annotations

from collections.abc import Callable
from typing import List, Optional, Sequence

from pipeline.execution.model import CommandRunner
from pipeline.execution.runner import SubprocessRunner
from pipeline.models import AnalysisQuery, PipelineRun
from pipeline.orchestrator import RunRequest, exit_code_for, run_pipeline
from pipeline.queries import build_catalog


class NativeIndexPipeline:
    """High-level facade over the pipeline.

    Callers should prefer using this object (built via :func:`pipeline.wiring.build_pipeline`)
    rather than importing low-level modules directly. Tests inject a fake
    ``runner`` here so no stage needs real tools.
    """

    def __init__(
        self,
        *,
        runner: Optional[CommandRunner] = None,
        run_fn: Callable[..., PipelineRun] = run_pipeline,
    ) -> None:
        self._runner = runner or SubprocessRunner()
        self._run_fn = run_fn

    def run(self, req: RunRequest) -> PipelineRun:
        return self._run_fn(req, runner=self._runner)

    def run_exit_code(self, req: RunRequest) -> int:
        return exit_code_for(self.run(req))

    def list_queries(self, extra: Sequence[AnalysisQuery] = ()) -> List[AnalysisQuery]:
        return list(build_catalog(extra).values())
