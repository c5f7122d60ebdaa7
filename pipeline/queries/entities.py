"""pipeline.queries.entities

Resolve symbol names to Multiplier entity ids via ``mx-find-symbol``.

Graph queries need an entity id; users know function names. Resolution runs
the symbol-search tool against the same index and picks an id from its output.
Results are cached for the life of the resolver (one run), and concurrent
queries asking for the same name share a single lookup.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Dict, Mapping, Optional

from pipeline.execution.model import CommandRunner, ToolInvocation
from tools.multiplier import parse_symbol_matches, pick_entity_id, query_command

logger = logging.getLogger(__name__)


class EntityResolutionError(LookupError):
    """No entity id could be determined for a symbol name."""


class EntityResolver:
    def __init__(
        self,
        *,
        db: Path,
        runner: CommandRunner,
        symbol_binary: str,
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[Path] = None,
        timeout_seconds: float = 0.0,
    ) -> None:
        self.db = Path(db)
        self.runner = runner
        self.symbol_binary = symbol_binary
        self.env = env
        self.cwd = cwd
        self.timeout_seconds = timeout_seconds

        self._cache: Dict[str, str] = {}
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def _lock_for(self, name: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(name, threading.Lock())

    def resolve(self, name: str) -> str:
        name = str(name).strip()
        if not name:
            raise EntityResolutionError("empty symbol name")

        with self._lock_for(name):
            if name in self._cache:
                return self._cache[name]

            inv = ToolInvocation(
                step=f"resolve_{name}",
                cmd=query_command(self.symbol_binary, db=self.db, flags={"name": name}),
                cwd=self.cwd,
                env=dict(self.env) if self.env is not None else None,
                timeout_seconds=self.timeout_seconds,
            )
            res = self.runner(inv)
            if not res.ok:
                raise EntityResolutionError(
                    f"symbol search for {name!r} failed with exit code {res.exit_code}: {res.output_tail(5)}"
                )

            entity_id = pick_entity_id(parse_symbol_matches(res.stdout), name)
            if entity_id is None:
                raise EntityResolutionError(f"no symbol named {name!r} in the index")

            logger.info("resolved %s -> entity %s", name, entity_id)
            self._cache[name] = entity_id
            return entity_id

    def cached(self) -> Dict[str, str]:
        with self._guard:
            return dict(self._cache)
