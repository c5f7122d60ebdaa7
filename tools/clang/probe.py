"""tools/clang/probe.py

Command builders and output parsers for clang toolchain queries.
Keeps clang driver quirks close to the tool.
"""

from __future__ import annotations

from typing import List, Optional

INCLUDE_SEARCH_START = "#include <...> search starts here:"
INCLUDE_SEARCH_END = "End of search list."


def resource_dir_command(compiler: str) -> List[str]:
    return [compiler, "-print-resource-dir"]


def include_search_command(compiler: str, language: str = "c++") -> List[str]:
    # stdin is expected to be /dev/null; the driver prints search paths with -v.
    return [compiler, "-E", "-x", language, "-", "-v"]


def parse_resource_dir(stdout: str) -> Optional[str]:
    """Return the resource directory reported by ``-print-resource-dir``."""
    for line in (stdout or "").splitlines():
        s = line.strip()
        if s:
            return s
    return None


def parse_include_search_paths(output: str) -> List[str]:
    """Extract the ``#include <...>`` search list from ``clang -v`` output.

    clang prints the list on stderr, one indented path per line, between
    :data:`INCLUDE_SEARCH_START` and :data:`INCLUDE_SEARCH_END`. Framework
    directories on macOS carry a ``(framework directory)`` suffix which is
    dropped.
    """
    paths: List[str] = []
    inside = False
    for line in (output or "").splitlines():
        s = line.strip()
        if not inside:
            if s == INCLUDE_SEARCH_START:
                inside = True
            continue
        if s == INCLUDE_SEARCH_END:
            break
        if not s:
            continue
        if s.endswith("(framework directory)"):
            s = s[: -len("(framework directory)")].strip()
        if s not in paths:
            paths.append(s)
    return paths
