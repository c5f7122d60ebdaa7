"""tools/bear

Bear records compiler invocations by shimming the compiler calls of a build and
writes a JSON compilation database.
"""

from __future__ import annotations

from .runner import BEAR_FALLBACKS, bear_command

__all__ = ["BEAR_FALLBACKS", "bear_command"]
