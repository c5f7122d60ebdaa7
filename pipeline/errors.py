"""pipeline.errors

Exception taxonomy for the pipeline.

Stages 1-4 (snapshot, build, instrumentation, index) raise and abort the run.
Query failures are captured per query as :class:`QueryError` values and never
propagate out of the query runner.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence


class PipelineError(Exception):
    """Base class for every error the pipeline raises on purpose."""

    stage: str = "pipeline"


class ConfigError(PipelineError):
    stage = "config"


class ToolchainQueryError(PipelineError):
    """The compiler could not report its resource directory."""

    stage = "environment"


class BuildError(PipelineError):
    """The uninstrumented build failed. Never retried."""

    stage = "build"

    def __init__(self, message: str, *, attempts: Sequence[Any] = ()) -> None:
        super().__init__(message)
        self.attempts = list(attempts)


class InstrumentationError(PipelineError):
    """Both recording strategies failed to produce a compilation record."""

    stage = "instrumentation"

    def __init__(self, message: str, *, attempts: Sequence[Any] = ()) -> None:
        super().__init__(message)
        self.attempts = list(attempts)


class IndexBuildError(PipelineError):
    stage = "index"


class QueryError(PipelineError):
    """One analysis query failed; recorded against that query only."""

    stage = "query"

    def __init__(self, query: str, message: str, *, exit_code: Optional[int] = None) -> None:
        super().__init__(f"{query}: {message}")
        self.query = query
        self.reason = message
        self.exit_code = exit_code

    def as_dict(self) -> dict[str, Any]:
        return {"query": self.query, "error": self.reason, "exit_code": self.exit_code}


class StageTimeoutError(PipelineError, TimeoutError):
    """A subprocess exceeded its deadline and was killed."""

    stage = "timeout"

    def __init__(self, command: str, timeout_seconds: float) -> None:
        super().__init__(f"command timed out after {timeout_seconds:g}s and was killed: {command}")
        self.command = command
        self.timeout_seconds = timeout_seconds
