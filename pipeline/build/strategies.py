"""pipeline.build.strategies

Central registry of compilation-recording strategies.

Why this exists
---------------
The build orchestrator and the fallback controller must agree on which
mechanism is "primary" and which is the alternative, and on how each one wraps
the project's build command. Keeping that in one table stops the two from
drifting.

Two mechanisms are supported:

- ``blight``: ``blight-exec --swizzle-path`` puts blight's compiler shims first
  on PATH (process swizzling) and Bear records underneath it. Richer journal,
  but fragile when blight cannot find the real compiler.
- ``bear``: Bear alone, intercepting compiler invocations directly. Less
  metadata, far fewer moving parts.

Strategies are pure: they build argv lists and environment overrides, they do
not execute anything.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Sequence, Tuple

from pipeline.config import PipelineConfig
from pipeline.errors import ConfigError
from pipeline.layout import RunPaths
from tools.bear import bear_command
from tools.blight import blight_exec_command, record_env


@dataclass(frozen=True)
class InstrumentationStrategy:
    """One way of recording compiler invocations during a build."""

    key: str
    label: str
    wrap_fn: Callable[[Sequence[str], Path], Tuple[List[str], Dict[str, str]]]

    def wrap(self, build_cmd: Sequence[str], *, record_out: Path) -> Tuple[List[str], Dict[str, str]]:
        """Return ``(argv, env_overrides)`` for an instrumented build."""
        return self.wrap_fn(build_cmd, record_out)


def _blight_strategy(config: PipelineConfig, paths: RunPaths) -> InstrumentationStrategy:
    def wrap(build_cmd: Sequence[str], record_out: Path) -> Tuple[List[str], Dict[str, str]]:
        inner = bear_command(config.tools.bear, output=record_out, build_cmd=build_cmd)
        cmd = blight_exec_command(config.tools.blight_exec, wrapped_cmd=inner)
        env = record_env(
            journal_path=paths.blight_journal_path,
            record_path=paths.blight_record_path,
            actions=config.blight_actions,
            log_level=config.blight_log_level,
        )
        return cmd, env

    return InstrumentationStrategy(key="blight", label="blight-exec + bear (path swizzling)", wrap_fn=wrap)


def _bear_strategy(config: PipelineConfig, paths: RunPaths) -> InstrumentationStrategy:
    def wrap(build_cmd: Sequence[str], record_out: Path) -> Tuple[List[str], Dict[str, str]]:
        return bear_command(config.tools.bear, output=record_out, build_cmd=build_cmd), {}

    return InstrumentationStrategy(key="bear", label="bear (compiler-call interception)", wrap_fn=wrap)


# Canonical registry. Insertion order is the default primary -> fallback order.
STRATEGIES: Dict[str, Callable[[PipelineConfig, RunPaths], InstrumentationStrategy]] = {
    "blight": _blight_strategy,
    "bear": _bear_strategy,
}

SUPPORTED_STRATEGIES = frozenset(STRATEGIES)


def build_strategy(key: str, config: PipelineConfig, paths: RunPaths) -> InstrumentationStrategy:
    factory = STRATEGIES.get(key)
    if factory is None:
        raise ConfigError(f"Unknown instrumentation strategy {key!r}. Valid: {sorted(STRATEGIES)}")
    return factory(config, paths)


def resolve_strategy_pair(
    config: PipelineConfig, paths: RunPaths
) -> Tuple[InstrumentationStrategy, InstrumentationStrategy]:
    """Return ``(primary, fallback)``; they must be different mechanisms."""
    if config.primary_strategy == config.fallback_strategy:
        raise ConfigError(
            "primary_strategy and fallback_strategy must differ; "
            f"both are {config.primary_strategy!r}"
        )
    return (
        build_strategy(config.primary_strategy, config, paths),
        build_strategy(config.fallback_strategy, config, paths),
    )
