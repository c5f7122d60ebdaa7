from __future__ import annotations

import argparse

from cli.commands.queries import run_list_queries
from cli.commands.run import run_run
from pipeline.errors import ConfigError
from pipeline.orchestrator import EXIT_USAGE
from pipeline.pipeline import NativeIndexPipeline


def dispatch(args: argparse.Namespace, pipeline: NativeIndexPipeline) -> int:
    try:
        if args.command == "run":
            return run_run(args, pipeline)
        if args.command == "queries":
            return run_list_queries(args, pipeline)
    except ConfigError as e:
        print(f"❌ {e}")
        return EXIT_USAGE
    raise SystemExit(f"Unknown command: {args.command}")
