#!/usr/bin/env python3
"""
CLI for the native index pipeline.

Commands:
  1) run      - snapshot, build with compilation recording, index, run queries
  2) queries  - list the query catalog

Usage:
  python audit_cli.py run --project ./pastel --jobs 8 --out ./out
  python audit_cli.py run --project ./pastel --queries sketchy_casts,call_graph --entity main --out ./out
  python audit_cli.py queries --config pipeline.yaml

Exit codes:
  0  build and index succeeded (query failures are reported, not fatal)
  1  the pipeline failed (see run_manifest.json)
  2  usage or configuration error
"""

from __future__ import annotations

import argparse
from typing import Optional, Sequence

from cli.args.base import add_common_args, add_run_args
from cli.args.tool_overrides import add_tool_override_args
from cli.dispatch import dispatch
from pipeline.wiring import ROOT_DIR, build_pipeline, configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Build a C/C++ project with compilation recording, index it, and run analysis queries."
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run the full pipeline against one project.")
    add_run_args(run)
    add_tool_override_args(run)
    add_common_args(run, root_dir=ROOT_DIR)

    queries = sub.add_parser("queries", help="List available analysis queries.")
    add_common_args(queries, root_dir=ROOT_DIR)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    raise SystemExit(dispatch(args, build_pipeline()))


if __name__ == "__main__":
    main()
