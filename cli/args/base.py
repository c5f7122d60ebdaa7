from __future__ import annotations

import argparse
from pathlib import Path


def add_common_args(parser: argparse.ArgumentParser, *, root_dir: Path) -> None:
    """Register flags shared by every subcommand (config + logging)."""

    parser.add_argument(
        "--config",
        help="Pipeline config YAML (tools, build command, timeouts, extra queries).",
    )
    parser.add_argument(
        "--env-file",
        default=str(root_dir / ".env"),
        help="KEY=VALUE file merged into the build environment (default: .env at the repo root).",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level for pipeline modules (default: INFO).",
    )


def add_run_args(parser: argparse.ArgumentParser) -> None:
    """Register flags for the ``run`` subcommand.

    This includes:
    - target project + output directory
    - build parallelism
    - query selection and graph-query entities
    - execution knobs (timeouts, query workers, optional passes)
    """

    parser.add_argument(
        "--project",
        required=True,
        help="Project root containing the build script.",
    )
    parser.add_argument(
        "--out",
        required=True,
        help="Output directory for the snapshot, record, index, artifacts and manifest.",
    )
    parser.add_argument(
        "--jobs",
        "-j",
        type=int,
        default=None,
        help="Build parallelism passed to the build command (default: config or CPU count).",
    )
    parser.add_argument(
        "--queries",
        default=None,
        help=(
            "Comma-separated query names to run (default: the whole catalog). "
            "Pass an empty string to skip queries. See `queries` for the list."
        ),
    )
    parser.add_argument(
        "--entity",
        default=None,
        help="Entity for graph queries: a numeric entity id or a symbol name to resolve.",
    )
    parser.add_argument(
        "--reachable-from",
        dest="reachable_from",
        default=None,
        help="(call_graph) Restrict to functions reachable from this entity id or symbol name.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Deadline in seconds for each build, index and query invocation (0 disables).",
    )
    parser.add_argument(
        "--query-workers",
        dest="query_workers",
        type=int,
        default=None,
        help="Maximum concurrent queries (default: config or 4).",
    )
    parser.add_argument(
        "--embed-commands",
        dest="embed_commands",
        action="store_true",
        default=None,
        help="Also run the blight EmbedCommands pass after recording.",
    )
