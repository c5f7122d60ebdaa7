from __future__ import annotations

"""cli.common

Small shared helpers for CLI command modules.
"""

from typing import List, Optional


def parse_csv(raw: Optional[str]) -> list[str]:
    """Parse a comma-separated list value into a list of non-empty strings."""
    if not raw:
        return []
    return [x.strip() for x in raw.split(",") if x.strip()]


def parse_query_names(raw: Optional[str]) -> Optional[List[str]]:
    """``None`` (flag absent) selects the whole catalog; ``""`` selects nothing."""
    if raw is None:
        return None
    return parse_csv(raw)
