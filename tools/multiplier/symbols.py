"""tools/multiplier/symbols.py

Parse entity ids out of ``mx-find-symbol`` output.

mx-find-symbol prints one match per line; the entity id is the first purely
numeric column and the symbol name appears as one of the other columns. The
exact column set differs between releases, so parsing stays tolerant: anything
without a numeric column is ignored.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

_SPLIT_RE = re.compile(r"[\t ]+")


@dataclass(frozen=True)
class SymbolMatch:
    entity_id: str
    columns: Tuple[str, ...]
    line: str

    def names(self) -> Tuple[str, ...]:
        return tuple(c for c in self.columns if c != self.entity_id)


def parse_symbol_matches(output: str) -> List[SymbolMatch]:
    matches: List[SymbolMatch] = []
    for raw in (output or "").splitlines():
        line = raw.strip()
        if not line:
            continue
        cols = tuple(c for c in _SPLIT_RE.split(line) if c)
        entity_id = next((c for c in cols if c.isdigit()), None)
        if entity_id is None:
            continue
        matches.append(SymbolMatch(entity_id=entity_id, columns=cols, line=line))
    return matches


def pick_entity_id(matches: List[SymbolMatch], name: str) -> Optional[str]:
    """Prefer an exact name match, else the first match; ``None`` if empty."""
    if not matches:
        return None
    for m in matches:
        if name in m.names():
            return m.entity_id
    return matches[0].entity_id
