"""pipeline.config

YAML configuration for pipeline runs.

Why this exists
---------------
Container builds configure everything through ``ENV`` lines and inline
shell, which cannot vary per project. A config file is the *plan* (which tools, which
build command, which queries); ``run_manifest.json`` remains the record of what
actually ran.

This module is intentionally small and filesystem-first. It provides:
- frozen dataclasses for the YAML schema
- load/dump helpers
- ``.env`` ingestion without touching ``os.environ``

Precedence (highest first): CLI flags > config file > ``.env`` > defaults.

Design goals
------------
- Tolerate missing optional fields.
- Fail with :class:`~pipeline.errors.ConfigError` on wrong shapes, never with a
  stray ``TypeError`` from deep inside a stage.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from dotenv import dotenv_values

from pipeline.errors import ConfigError
from pipeline.models import AnalysisQuery
from tools.blight import DEFAULT_RECORD_ACTIONS
from tools.multiplier import MULTIPLIER_BIN_DIR

DEFAULT_BUILD_COMMAND: Tuple[str, ...] = ("./build.sh", "-j{jobs}")


# ----------------------------
# YAML model
# ----------------------------

@dataclass(frozen=True)
class ToolPaths:
    """External binaries. Bare names are resolved on PATH at exec time."""

    compiler: str = "clang"
    blight_exec: str = "blight-exec"
    bear: str = "bear"
    multiplier_bin_dir: Optional[str] = MULTIPLIER_BIN_DIR


@dataclass(frozen=True)
class Timeouts:
    """Per-invocation deadlines in seconds (0 disables the deadline)."""

    build: float = 4 * 3600
    index: float = 4 * 3600
    query: float = 1800
    probe: float = 60


@dataclass(frozen=True)
class PipelineConfig:
    tools: ToolPaths = field(default_factory=ToolPaths)
    timeouts: Timeouts = field(default_factory=Timeouts)

    build_command: Tuple[str, ...] = DEFAULT_BUILD_COMMAND
    jobs: Optional[int] = None

    # Added to the captured environment (e.g. BOOST_ROOT, CXXFLAGS).
    extra_env: Mapping[str, str] = field(default_factory=dict)

    primary_strategy: str = "blight"
    fallback_strategy: str = "bear"
    blight_actions: str = DEFAULT_RECORD_ACTIONS
    blight_log_level: Optional[str] = "DEBUG"

    embed_commands: bool = False
    probe_tools: Tuple[str, ...] = ("ar", "ranlib", "ld")

    show_progress: bool = True
    cleanup_workspace: bool = True

    query_workers: int = 4
    # Named query definitions merged over the built-in catalog.
    queries: Tuple[AnalysisQuery, ...] = ()

    # ----------------------------
    # Conversions
    # ----------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tools": {
                "compiler": self.tools.compiler,
                "blight_exec": self.tools.blight_exec,
                "bear": self.tools.bear,
                "multiplier_bin_dir": self.tools.multiplier_bin_dir,
            },
            "timeouts": {
                "build": self.timeouts.build,
                "index": self.timeouts.index,
                "query": self.timeouts.query,
                "probe": self.timeouts.probe,
            },
            "build_command": list(self.build_command),
            "jobs": self.jobs,
            "extra_env": dict(self.extra_env),
            "primary_strategy": self.primary_strategy,
            "fallback_strategy": self.fallback_strategy,
            "blight_actions": self.blight_actions,
            "blight_log_level": self.blight_log_level,
            "embed_commands": self.embed_commands,
            "probe_tools": list(self.probe_tools),
            "show_progress": self.show_progress,
            "cleanup_workspace": self.cleanup_workspace,
            "query_workers": self.query_workers,
            "queries": {
                q.name: {"kind": q.kind, "artifact": q.artifact, "params": dict(q.params)}
                for q in self.queries
            },
        }

    @staticmethod
    def from_dict(raw: Optional[Mapping[str, Any]]) -> "PipelineConfig":
        raw = raw or {}
        if not isinstance(raw, Mapping):
            raise ConfigError("config must be a mapping at top level")

        defaults = PipelineConfig()

        tools_raw = _mapping(raw, "tools")
        tools = ToolPaths(
            compiler=str(tools_raw.get("compiler", defaults.tools.compiler)),
            blight_exec=str(tools_raw.get("blight_exec", defaults.tools.blight_exec)),
            bear=str(tools_raw.get("bear", defaults.tools.bear)),
            multiplier_bin_dir=tools_raw.get("multiplier_bin_dir", defaults.tools.multiplier_bin_dir),
        )

        t_raw = _mapping(raw, "timeouts")
        timeouts = Timeouts(
            build=_number(t_raw, "build", defaults.timeouts.build),
            index=_number(t_raw, "index", defaults.timeouts.index),
            query=_number(t_raw, "query", defaults.timeouts.query),
            probe=_number(t_raw, "probe", defaults.timeouts.probe),
        )

        build_command = raw.get("build_command", list(defaults.build_command))
        if isinstance(build_command, str):
            try:
                build_command = shlex.split(build_command)
            except ValueError as e:
                raise ConfigError(f"build_command: {e}") from e
        if not isinstance(build_command, (list, tuple)) or not build_command:
            raise ConfigError("build_command must be a non-empty list or string")

        jobs = raw.get("jobs")
        if jobs is not None:
            jobs = _positive_int(jobs, "jobs")

        extra_env = {str(k): str(v) for k, v in _mapping(raw, "extra_env").items()}

        probe_tools = raw.get("probe_tools", list(defaults.probe_tools))
        if isinstance(probe_tools, str):
            probe_tools = [t.strip() for t in probe_tools.split(",") if t.strip()]

        return PipelineConfig(
            tools=tools,
            timeouts=timeouts,
            build_command=tuple(str(c) for c in build_command),
            jobs=jobs,
            extra_env=extra_env,
            primary_strategy=str(raw.get("primary_strategy", defaults.primary_strategy)),
            fallback_strategy=str(raw.get("fallback_strategy", defaults.fallback_strategy)),
            blight_actions=str(raw.get("blight_actions", defaults.blight_actions)),
            blight_log_level=raw.get("blight_log_level", defaults.blight_log_level),
            embed_commands=bool(raw.get("embed_commands", defaults.embed_commands)),
            probe_tools=tuple(str(t) for t in probe_tools or ()),
            show_progress=bool(raw.get("show_progress", defaults.show_progress)),
            cleanup_workspace=bool(raw.get("cleanup_workspace", defaults.cleanup_workspace)),
            query_workers=_positive_int(raw.get("query_workers", defaults.query_workers), "query_workers"),
            queries=tuple(_parse_queries(raw.get("queries"))),
        )

    def with_overrides(self, **changes: Any) -> "PipelineConfig":
        """Return a copy with non-None *changes* applied (CLI flags)."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    def with_tool_overrides(self, **paths: Optional[str]) -> "PipelineConfig":
        """Return a copy with non-None tool binaries replaced."""
        changes = {k: v for k, v in paths.items() if v is not None}
        if not changes:
            return self
        unknown = sorted(set(changes) - set(ToolPaths.__dataclass_fields__))
        if unknown:
            raise ConfigError(f"Unknown tool override(s): {', '.join(unknown)}")
        return replace(self, tools=replace(self.tools, **changes))

    def with_stage_timeout(self, seconds: Optional[float]) -> "PipelineConfig":
        """Apply one deadline to build, index and query invocations."""
        if seconds is None:
            return self
        if seconds < 0:
            raise ConfigError("timeout must be >= 0")
        return replace(
            self,
            timeouts=replace(self.timeouts, build=float(seconds), index=float(seconds), query=float(seconds)),
        )

    def with_env_defaults(self, env: Mapping[str, Optional[str]]) -> "PipelineConfig":
        """Merge ``.env`` values under the configured ``extra_env``."""
        merged = {str(k): str(v) for k, v in env.items() if v is not None}
        merged.update(self.extra_env)
        return replace(self, extra_env=merged)


# ----------------------------
# Parsing helpers
# ----------------------------

def _mapping(raw: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = raw.get(key) or {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"{key!r} must be a mapping, got {type(value).__name__}")
    return value


def _number(raw: Mapping[str, Any], key: str, default: float) -> float:
    value = raw.get(key, default)
    try:
        out = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"timeouts.{key} must be a number, got {value!r}") from None
    if out < 0:
        raise ConfigError(f"timeouts.{key} must be >= 0")
    return out


def _positive_int(value: Any, name: str) -> int:
    try:
        out = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None
    if out < 1:
        raise ConfigError(f"{name} must be >= 1")
    return out


def _parse_queries(raw: Any) -> List[AnalysisQuery]:
    """Accept ``{name: {kind, artifact, params}}`` or a list of dicts with ``name``."""
    if not raw:
        return []
    items: List[Tuple[str, Mapping[str, Any]]] = []
    if isinstance(raw, Mapping):
        for name, body in raw.items():
            items.append((str(name), body or {}))
    elif isinstance(raw, list):
        for body in raw:
            if not isinstance(body, Mapping) or not body.get("name"):
                raise ConfigError("each query list entry must be a mapping with a 'name'")
            items.append((str(body["name"]), body))
    else:
        raise ConfigError("queries must be a mapping or a list")

    out: List[AnalysisQuery] = []
    for name, body in items:
        if not isinstance(body, Mapping) or not body.get("kind"):
            raise ConfigError(f"query {name!r} must declare a 'kind'")
        params = body.get("params") or {}
        if not isinstance(params, Mapping):
            raise ConfigError(f"query {name!r} params must be a mapping")
        out.append(
            AnalysisQuery(
                name=name,
                kind=str(body["kind"]),
                params=dict(params),
                artifact=str(body["artifact"]) if body.get("artifact") else None,
            )
        )
    return out


# ----------------------------
# YAML / .env IO
# ----------------------------

def load_config_yaml(path: str | Path) -> PipelineConfig:
    """Load a pipeline config from YAML."""
    import yaml

    p = Path(path).expanduser().resolve()
    if not p.exists():
        raise ConfigError(f"Config file not found: {p}")
    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {p}: {e}") from e
    return PipelineConfig.from_dict(raw)


def dump_config_yaml(path: str | Path, config: PipelineConfig) -> Path:
    """Write a config to YAML (stable, readable order)."""
    import yaml

    p = Path(path).expanduser().resolve()
    p.parent.mkdir(parents=True, exist_ok=True)
    text = yaml.safe_dump(config.to_dict(), sort_keys=False, default_flow_style=False, width=120)
    p.write_text(text, encoding="utf-8")
    return p


def read_env_file(path: str | Path) -> Dict[str, Optional[str]]:
    """Read KEY=VALUE pairs from a ``.env`` file (missing file -> empty)."""
    p = Path(path).expanduser()
    if not p.exists():
        return {}
    return dict(dotenv_values(p))
