"""tools/clang

Toolchain queries for the clang driver.

The pipeline never compiles anything itself; it only asks the compiler where
its resource directory and default include-search paths live so the indexing
engine sees exactly the headers the build saw.
"""

from __future__ import annotations

from .probe import (
    INCLUDE_SEARCH_END,
    INCLUDE_SEARCH_START,
    include_search_command,
    parse_include_search_paths,
    parse_resource_dir,
    resource_dir_command,
)

__all__ = [
    "INCLUDE_SEARCH_END",
    "INCLUDE_SEARCH_START",
    "include_search_command",
    "parse_include_search_paths",
    "parse_resource_dir",
    "resource_dir_command",
]
