"""tools/blight/runner.py

Tool-specific command plumbing for blight-exec.
Keeps blight's environment-variable protocol close to the tool.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Sequence

BLIGHT_FALLBACKS = ["/usr/local/bin/blight-exec"]

DEFAULT_RECORD_ACTIONS = "Demo:SkipStrip:Record"


def blight_exec_command(
    blight_bin: str,
    *,
    wrapped_cmd: Sequence[str],
    action: Optional[str] = None,
) -> List[str]:
    """Build ``blight-exec --guess-wrapped --swizzle-path [--action A] -- <cmd>``."""
    cmd = [blight_bin, "--guess-wrapped", "--swizzle-path"]
    if action:
        cmd += ["--action", action]
    cmd.append("--")
    cmd += [str(c) for c in wrapped_cmd]
    return cmd


def record_env(
    *,
    journal_path: Path,
    record_path: Path,
    actions: str = DEFAULT_RECORD_ACTIONS,
    log_level: Optional[str] = None,
) -> Dict[str, str]:
    """Environment overrides for a recording run."""
    env = {
        "BLIGHT_ACTIONS": actions,
        "BLIGHT_JOURNAL_PATH": str(journal_path),
        "BLIGHT_ACTION_RECORD": f"output={record_path}",
    }
    if log_level:
        env["BLIGHT_LOG_LEVEL"] = str(log_level)
    return env


def embed_commands_env(output_dir: Path) -> Dict[str, str]:
    """Environment overrides for the EmbedCommands action."""
    return {"BLIGHT_ACTION_EMBEDCOMMANDS": f"output={output_dir}"}
