from __future__ import annotations

import argparse
from pathlib import Path

from cli.common import parse_query_names
from pipeline.orchestrator import RunRequest
from pipeline.pipeline import NativeIndexPipeline
from pipeline.wiring import load_config


def run_run(args: argparse.Namespace, pipeline: NativeIndexPipeline) -> int:
    config = load_config(
        args.config,
        env_file=args.env_file,
        jobs=args.jobs,
        query_workers=args.query_workers,
        embed_commands=args.embed_commands,
    )
    config = config.with_tool_overrides(
        compiler=args.compiler,
        blight_exec=args.blight_exec,
        bear=args.bear,
        multiplier_bin_dir=args.multiplier_bin_dir,
    ).with_stage_timeout(args.timeout)

    req = RunRequest(
        project_dir=Path(args.project),
        out_dir=Path(args.out),
        config=config,
        jobs=args.jobs,
        query_names=parse_query_names(args.queries),
        entity=args.entity,
        reachable_from=args.reachable_from,
    )
    return pipeline.run_exit_code(req)
