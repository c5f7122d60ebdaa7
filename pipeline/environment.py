"""pipeline.environment

Environment Snapshotter.

Captures the resolved environment once per run, asks the compiler for its
resource directory and default include-search paths, and persists the result.
Every later subprocess (build attempts, indexing, queries) runs with
``snapshot.as_environ()`` rather than the live process environment, so a
retry sees exactly what the first attempt saw.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping, Optional

from pipeline.errors import StageTimeoutError, ToolchainQueryError
from pipeline.execution.model import CommandRunner, ToolInvocation
from pipeline.models import EnvironmentSnapshot, now_iso
from tools.clang import (
    include_search_command,
    parse_include_search_paths,
    parse_resource_dir,
    resource_dir_command,
)
from tools.io import read_json, write_json_atomic, write_text_atomic

logger = logging.getLogger(__name__)

# Values the env file writer quotes, as mx-index expects them.
_QUOTED_DERIVED = ("CPATH", "CPPFLAGS")


def capture(
    *,
    runner: CommandRunner,
    compiler: str = "clang",
    base_env: Optional[Mapping[str, str]] = None,
    extra: Optional[Mapping[str, str]] = None,
    timeout_seconds: float = 60,
) -> EnvironmentSnapshot:
    """Capture an :class:`EnvironmentSnapshot`.

    Raises :class:`ToolchainQueryError` when the compiler cannot report its
    resource directory. A failed include-search probe only logs a warning.
    """

    variables = dict(os.environ if base_env is None else base_env)
    if extra:
        variables.update({str(k): str(v) for k, v in extra.items()})

    res = runner(
        ToolInvocation(
            step="toolchain_resource_dir",
            cmd=resource_dir_command(compiler),
            env=variables,
            timeout_seconds=timeout_seconds,
        )
    )
    resource_dir = parse_resource_dir(res.stdout) if res.ok else None
    if not resource_dir:
        detail = res.output_tail() or f"exit code {res.exit_code}"
        raise ToolchainQueryError(
            f"{compiler} could not report its resource directory: {detail}"
        )

    try:
        inc = runner(
            ToolInvocation(
                step="toolchain_include_paths",
                cmd=include_search_command(compiler),
                env=variables,
                timeout_seconds=timeout_seconds,
            )
        )
    except StageTimeoutError as e:
        logger.warning("include search for %s timed out: %s", compiler, e)
        include_paths = []
    else:
        include_paths = parse_include_search_paths(f"{inc.stderr}\n{inc.stdout}")
        if inc.exit_code != 0 or not include_paths:
            logger.warning(
                "include-search probe for %s returned no paths (exit %s)", compiler, inc.exit_code
            )

    snapshot = EnvironmentSnapshot(
        variables=variables,
        resource_dir=resource_dir,
        include_paths=tuple(include_paths),
        compiler=compiler,
        captured_at=now_iso(),
    )
    logger.info(
        "captured %d variables; resource dir %s; %d include paths",
        len(variables),
        resource_dir,
        len(include_paths),
    )
    return snapshot


def save_snapshot(snapshot: EnvironmentSnapshot, path: Path) -> Path:
    write_json_atomic(Path(path), snapshot.to_dict())
    return Path(path)


def load_snapshot(path: Path) -> EnvironmentSnapshot:
    return EnvironmentSnapshot.from_dict(read_json(Path(path)))


def render_env_file(snapshot: EnvironmentSnapshot) -> str:
    """Render ``KEY=VALUE`` lines for the indexing engine.

    Snapshot variables first, then the derived toolchain variables, which win
    over any inherited value of the same name. Multi-line values cannot be
    represented and are dropped.
    """
    derived = snapshot.derived_variables()
    lines = []
    for key, value in snapshot.variables.items():
        if key in derived:
            continue
        if "\n" in value:
            logger.debug("env file: dropping multi-line variable %s", key)
            continue
        lines.append(f"{key}={value}")
    for key, value in derived.items():
        lines.append(f'{key}="{value}"' if key in _QUOTED_DERIVED else f"{key}={value}")
    return "\n".join(lines) + "\n"


def write_env_file(snapshot: EnvironmentSnapshot, path: Path) -> Path:
    write_text_atomic(Path(path), render_env_file(snapshot))
    return Path(path)
