"""tools/multiplier/commands.py

Command builders for mx-index and the query binaries.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, List, Mapping, Optional

MULTIPLIER_BIN_DIR = "/opt/multiplier/multiplier-770d235/bin"


def tool_path(bin_dir: Optional[str], name: str) -> str:
    """Resolve ``name`` under the multiplier bin dir (or leave it to PATH)."""
    if not bin_dir:
        return name
    return str(Path(bin_dir) / name)


def index_command(
    mx_index: str,
    *,
    db: Path,
    target: Path,
    workspace: Path,
    env_file: Path,
    show_progress: bool = False,
) -> List[str]:
    cmd = [
        mx_index,
        "--db",
        str(db),
        "--target",
        str(target),
        "--workspace",
        str(workspace),
        "--env",
        str(env_file),
    ]
    if show_progress:
        cmd.append("--show_progress")
    return cmd


def query_command(binary: str, *, db: Path, flags: Mapping[str, Any]) -> List[str]:
    """Build ``<binary> --db <db> [--flag value | --switch]...``.

    ``True`` renders a bare switch, ``False``/``None`` drops the flag, anything
    else is rendered as ``--flag value``. Flag order follows *flags*.
    """
    cmd = [binary, "--db", str(db)]
    for key, value in flags.items():
        if value is None or value is False:
            continue
        flag = key if key.startswith("--") else f"--{key}"
        if value is True:
            cmd.append(flag)
        else:
            cmd += [flag, str(value)]
    return cmd
