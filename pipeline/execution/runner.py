"""pipeline.execution.runner

Subprocess execution for every stage of the pipeline.

Rule
----
Only this module should touch ``subprocess``.

Every invocation runs in its own process group with stdin bound to
``/dev/null``. When a deadline is set and expires, the whole group is killed
with ``SIGKILL`` (builds fork compilers; killing only the parent would leave
them running) and :class:`~pipeline.errors.StageTimeoutError` is raised.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import time
from pathlib import Path

from pipeline.errors import StageTimeoutError

from .model import ToolExecution, ToolInvocation, now_iso

logger = logging.getLogger(__name__)


def _kill_group(proc: subprocess.Popen) -> None:
    if os.name == "posix":
        try:
            os.killpg(proc.pid, signal.SIGKILL)
            return
        except ProcessLookupError:
            return
        except OSError:
            pass
    proc.kill()


def run_invocation(inv: ToolInvocation) -> ToolExecution:
    """Execute one invocation and capture stdout/stderr (no ``shell=True``).

    Never raises on non-zero exit codes. Raises ``FileNotFoundError`` when the
    program does not exist and :class:`StageTimeoutError` on deadline expiry.
    """

    logger.debug("exec[%s]: %s", inv.step, inv.command_str)
    started = now_iso()
    t0 = time.monotonic()

    proc = subprocess.Popen(
        [str(c) for c in inv.cmd],
        cwd=str(inv.cwd) if inv.cwd else None,
        env=dict(inv.env) if inv.env is not None else None,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        errors="replace",
        start_new_session=(os.name == "posix"),
    )

    timeout = inv.timeout_seconds if inv.timeout_seconds and inv.timeout_seconds > 0 else None
    try:
        stdout, stderr = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        _kill_group(proc)
        proc.communicate()
        logger.error("exec[%s]: killed after %ss", inv.step, inv.timeout_seconds)
        raise StageTimeoutError(inv.command_str, float(inv.timeout_seconds))

    return ToolExecution(
        invocation=inv,
        exit_code=int(proc.returncode),
        started=started,
        finished=now_iso(),
        elapsed_seconds=time.monotonic() - t0,
        stdout=stdout or "",
        stderr=stderr or "",
    )


class SubprocessRunner:
    """Default :data:`~pipeline.execution.model.CommandRunner`.

    A program that cannot be started is reported the way a shell would: exit
    127 when it does not exist, 126 when it exists but cannot be executed (no
    permission, bad executable format, unusable cwd). Stages treat both as an
    ordinary failed attempt.
    """

    def __call__(self, inv: ToolInvocation) -> ToolExecution:
        try:
            return run_invocation(inv)
        except StageTimeoutError:
            # TimeoutError is an OSError; deadlines are not start failures.
            raise
        except OSError as e:
            t = now_iso()
            missing = isinstance(e, FileNotFoundError) and not (inv.cwd and not Path(inv.cwd).is_dir())
            logger.warning("exec[%s]: cannot start %s: %s", inv.step, inv.program, e)
            return ToolExecution(
                invocation=inv,
                exit_code=127 if missing else 126,
                started=t,
                finished=t,
                stderr=f"{type(e).__name__}: {e}",
            )
