"""CLI argument builder modules.

The top-level :mod:`audit_cli` is intentionally kept thin. Groups of flags are
registered via small "arg builder" functions housed here:

- :func:`cli.args.base.add_common_args`
- :func:`cli.args.base.add_run_args`
- :func:`cli.args.tool_overrides.add_tool_override_args`
"""

from __future__ import annotations

__all__ = [
    "base",
    "tool_overrides",
]
