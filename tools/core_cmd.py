"""tools/core_cmd.py

Executable-resolution helpers shared across tool adapters.

This module deliberately avoids tool-specific knowledge. It provides:

* :func:`which_optional` - resolve executables on PATH or known install dirs.
* :func:`command_str` - render an argv list for logs and receipts.
"""

from __future__ import annotations

import os
import shlex
import shutil
from pathlib import Path
from typing import List, Optional, Sequence


def which_optional(
    bin_name: str,
    fallbacks: Optional[List[str]] = None,
    *,
    search_path: Optional[str] = None,
) -> Optional[str]:
    """Locate an executable; return ``None`` when it cannot be found.

    ``search_path`` replaces ``$PATH`` for the lookup (e.g. the PATH recorded
    in an environment snapshot).
    """
    if os.sep in bin_name:
        p = Path(bin_name)
        if p.exists() and os.access(str(p), os.X_OK):
            return str(p)
        return None

    found = shutil.which(bin_name, path=search_path)
    if found:
        return found

    for candidate in fallbacks or []:
        p = Path(candidate)
        if p.exists() and os.access(str(p), os.X_OK):
            return str(p)
    return None


def command_str(cmd: Sequence[str]) -> str:
    """Shell-quoted rendering of an argv list (display only, never executed)."""
    return " ".join(shlex.quote(str(c)) for c in cmd)
