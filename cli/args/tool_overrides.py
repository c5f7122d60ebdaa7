from __future__ import annotations

import argparse


def add_tool_override_args(parser: argparse.ArgumentParser) -> None:
    """Register tool binary overrides (compiler, blight, bear, multiplier)."""

    parser.add_argument(
        "--compiler",
        help="Compiler queried for its resource directory and include paths (default: clang).",
    )
    parser.add_argument(
        "--blight-exec",
        dest="blight_exec",
        help="blight-exec binary used by the primary recording strategy.",
    )
    parser.add_argument(
        "--bear",
        help="Bear binary used by both recording strategies.",
    )
    parser.add_argument(
        "--multiplier-bin-dir",
        dest="multiplier_bin_dir",
        help="Directory holding mx-index and the mx-* query tools.",
    )
