"""pipeline.execution.model

Shared data structures for subprocess execution.

The execution layer is split into:

* :mod:`pipeline.execution.model`  – what to run / what happened (no side effects)
* :mod:`pipeline.execution.runner` – subprocess execution (side effects)
* :mod:`pipeline.execution.record` – filesystem receipts/manifests (side effects)

Stages build :class:`ToolInvocation` values and hand them to a runner. Tests
substitute the runner with a fake that returns canned :class:`ToolExecution`
values, so no stage ever needs a real compiler to be exercised.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional

from pipeline.models import now_iso
from tools.core_cmd import command_str as _command_str

__all__ = ["CommandRunner", "ToolExecution", "ToolInvocation", "now_iso"]


@dataclass(frozen=True)
class ToolInvocation:
    """A planned command invocation.

    ``env`` is the complete environment for the child process. ``None`` means
    "inherit", which only the CLI's own diagnostics should ever use; stages
    always pass the snapshot environment.
    """

    step: str
    cmd: List[str]
    cwd: Optional[Path] = None
    env: Optional[Mapping[str, str]] = None
    timeout_seconds: float = 0.0

    @property
    def command_str(self) -> str:
        return _command_str(self.cmd)

    @property
    def program(self) -> str:
        return str(self.cmd[0]) if self.cmd else ""


@dataclass(frozen=True)
class ToolExecution:
    """The result of executing a tool invocation."""

    invocation: ToolInvocation
    exit_code: int
    started: str
    finished: str
    elapsed_seconds: float = 0.0
    stdout: str = ""
    stderr: str = ""
    extra: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def cmd(self) -> List[str]:
        return list(self.invocation.cmd)

    @property
    def command_str(self) -> str:
        return self.invocation.command_str

    def output_tail(self, max_lines: int = 20) -> str:
        """Last lines of stderr (or stdout) for error messages."""
        text = self.stderr.strip() or self.stdout.strip()
        lines = text.splitlines()
        return "\n".join(lines[-max_lines:])


CommandRunner = Callable[[ToolInvocation], ToolExecution]
