"""tools/multiplier

Multiplier tool suite: ``mx-index`` builds the code index from a compilation
database, the ``mx-find-*`` / ``mx-print-*`` binaries query it.

This package only knows how to spell the command lines and how to read the
bits of output the pipeline needs (entity ids from symbol search).
"""

from __future__ import annotations

from .commands import (
    MULTIPLIER_BIN_DIR,
    index_command,
    query_command,
    tool_path,
)
from .symbols import SymbolMatch, parse_symbol_matches, pick_entity_id

__all__ = [
    "MULTIPLIER_BIN_DIR",
    "SymbolMatch",
    "index_command",
    "parse_symbol_matches",
    "pick_entity_id",
    "query_command",
    "tool_path",
]
