from __future__ import annotations

import argparse

from pipeline.pipeline import NativeIndexPipeline
from pipeline.queries import get_query_kind
from pipeline.wiring import load_config


def run_list_queries(args: argparse.Namespace, pipeline: NativeIndexPipeline) -> int:
    config = load_config(args.config, env_file=None)
    queries = pipeline.list_queries(config.queries)

    print("Available queries:")
    for q in queries:
        try:
            kind = get_query_kind(q.kind)
            binary, ext = kind.binary, kind.ext
        except KeyError:
            binary, ext = "<unknown kind>", "?"
        params = ", ".join(f"{k}={v}" for k, v in q.params.items()) or "-"
        print(f"  {q.name:<22} {q.kind:<16} {binary:<30} -> {q.artifact_name}.{ext}  [{params}]")
    return 0
