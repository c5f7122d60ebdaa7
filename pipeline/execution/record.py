"""pipeline.execution.record

Filesystem side effects for execution receipts.

Rule
----
Step logs and the run manifest are written here and nowhere else. Writers are
used on the failure path too, so a write problem is logged and never masks the
error that is being reported.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from pipeline.layout import RunPaths
from pipeline.models import PipelineRun, now_iso
from tools.io import write_json_atomic, write_text_atomic

from .model import ToolExecution

logger = logging.getLogger(__name__)

MANIFEST_SCHEMA_VERSION = 1


def write_step_log(paths: RunPaths, step: str, execution: ToolExecution) -> Optional[Path]:
    """Write <out>/logs/<step>.log with the command and its captured output."""

    p = paths.log_path(step)
    text = (
        f"# step: {step}\n"
        f"# command: {execution.command_str}\n"
        f"# cwd: {execution.invocation.cwd or ''}\n"
        f"# started: {execution.started}\n"
        f"# finished: {execution.finished}\n"
        f"# exit_code: {execution.exit_code}\n"
        "\n## stdout\n"
        f"{execution.stdout}\n"
        "\n## stderr\n"
        f"{execution.stderr}\n"
    )
    try:
        write_text_atomic(p, text)
    except OSError as e:
        logger.warning("could not write step log %s: %s", p, e)
        return None
    return p


def build_run_manifest(run: PipelineRun, paths: RunPaths) -> Dict[str, Any]:
    return {
        "schema_version": MANIFEST_SCHEMA_VERSION,
        "run_id": run.run_id,
        "recorded_at": now_iso(),
        "status": run.status.value,
        "started": run.started,
        "finished": run.finished,
        "project_dir": str(run.project_dir),
        "out_dir": str(paths.out_dir),
        "error": (
            {"type": run.error_type, "message": run.error_message}
            if run.error_type
            else None
        ),
        "environment": {
            "snapshot": str(paths.env_snapshot_path) if run.snapshot else None,
            "snapshot_hash": run.snapshot.content_hash() if run.snapshot else None,
            "resource_dir": run.snapshot.resource_dir if run.snapshot else None,
            "include_paths": list(run.snapshot.include_paths) if run.snapshot else [],
        },
        "build": {
            "uninstrumented_ok": run.uninstrumented_ok,
            "attempts": [a.to_dict() for a in run.attempts],
            "fallback_transitions": list(run.fallback_transitions),
        },
        "compilation_record": (
            {
                "path": str(run.record.path) if run.record.path else None,
                "entries": len(run.record),
                "hash": run.record.content_hash(),
            }
            if run.record is not None
            else None
        ),
        "index": run.index.to_dict() if run.index else None,
        "queries": {name: o.to_dict() for name, o in run.query_outcomes.items()},
        "query_failures": run.query_failures(),
        "artifacts": [a.to_dict() for a in run.artifacts],
        "history": [s.to_dict() for s in run.history],
    }


def write_run_manifest(run: PipelineRun, paths: RunPaths) -> Optional[Path]:
    """Write <out>/run_manifest.json (always, success or failure)."""

    p = paths.manifest_path
    try:
        write_json_atomic(p, build_run_manifest(run, paths))
    except OSError as e:
        logger.error("could not write run manifest %s: %s", p, e)
        return None
    return p
