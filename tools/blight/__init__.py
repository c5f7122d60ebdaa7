"""tools/blight

blight-exec wraps a build and swizzles PATH so every compiler/linker call goes
through blight's own shims, which run configured "actions" (Record,
EmbedCommands, SkipStrip, ...).
"""

from __future__ import annotations

from .runner import (
    BLIGHT_FALLBACKS,
    DEFAULT_RECORD_ACTIONS,
    blight_exec_command,
    embed_commands_env,
    record_env,
)

__all__ = [
    "BLIGHT_FALLBACKS",
    "DEFAULT_RECORD_ACTIONS",
    "blight_exec_command",
    "embed_commands_env",
    "record_env",
]
