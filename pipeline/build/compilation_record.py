"""pipeline.build.compilation_record

Read/write the JSON compilation database produced by the recording wrappers.

Entries follow the ``compile_commands.json`` convention: ``directory``,
``file`` and either an ``arguments`` list or a shell-quoted ``command`` string.
A missing or unreadable file loads as an empty record; the build orchestrator
treats "empty" and "failed" the same way.
"""

from __future__ import annotations

import json
import logging
import shlex
from pathlib import Path
from typing import Any, List, Mapping, Optional

from pipeline.models import CompilationRecord, CompileEntry
from tools.io import write_json_atomic

logger = logging.getLogger(__name__)


def entry_from_dict(raw: Mapping[str, Any]) -> Optional[CompileEntry]:
    args = raw.get("arguments")
    if not args and raw.get("command"):
        args = shlex.split(str(raw["command"]))
    if not args or not raw.get("file"):
        return None
    args = [str(a) for a in args]
    return CompileEntry(
        program=args[0],
        arguments=tuple(args[1:]),
        directory=str(raw.get("directory") or "."),
        file=str(raw["file"]),
        output=str(raw["output"]) if raw.get("output") else None,
    )


def load_compilation_record(path: Path) -> CompilationRecord:
    p = Path(path)
    if not p.exists() or not p.is_file():
        return CompilationRecord(entries=(), path=p)
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("unreadable compilation record %s: %s", p, e)
        return CompilationRecord(entries=(), path=p)
    if not isinstance(data, list):
        logger.warning("compilation record %s is not a JSON list", p)
        return CompilationRecord(entries=(), path=p)

    entries: List[CompileEntry] = []
    for raw in data:
        if not isinstance(raw, Mapping):
            continue
        entry = entry_from_dict(raw)
        if entry is None:
            logger.debug("skipping malformed record entry: %r", raw)
            continue
        entries.append(entry)
    return CompilationRecord(entries=tuple(entries), path=p)


def write_compilation_record(record: CompilationRecord, path: Path) -> CompilationRecord:
    write_json_atomic(Path(path), record.to_list(), sort_keys=False)
    return CompilationRecord(entries=record.entries, path=Path(path))
