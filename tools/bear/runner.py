"""tools/bear/runner.py

Tool-specific command plumbing for Bear.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Sequence

BEAR_FALLBACKS = ["/usr/bin/bear", "/usr/local/bin/bear"]


def bear_command(bear_bin: str, *, output: Path, build_cmd: Sequence[str]) -> List[str]:
    """Wrap *build_cmd* so Bear writes its compilation database to *output*."""
    return [bear_bin, "--output", str(output), "--", *[str(c) for c in build_cmd]]
