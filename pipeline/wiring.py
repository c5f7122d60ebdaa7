"""pipeline.wiring

This module is the **composition root** for the Python runtime.

"Composition root" means: the single place where we *assemble* the running
application from its building blocks:

- load configuration (YAML file, ``.env``, CLI overrides)
- configure logging
- choose real vs fake command runners (useful for testing)
- build the high-level pipeline facade object

Keeping this wiring in one place prevents configuration and dependency setup
from being duplicated across entrypoints (CLI, scripts, CI).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

from pipeline.config import PipelineConfig, load_config_yaml, read_env_file
from pipeline.execution.model import CommandRunner
from pipeline.pipeline import NativeIndexPipeline

ROOT_DIR: Path = Path(__file__).resolve().parents[1]
ENV_PATH: Path = ROOT_DIR / ".env"

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

_logging_configured = False


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once per process (CLI runs only)."""
    global _logging_configured
    numeric = logging.getLevelName(str(level).upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO
    if _logging_configured:
        logging.getLogger().setLevel(numeric)
        return
    logging.basicConfig(level=numeric, format=LOG_FORMAT)
    _logging_configured = True


def load_config(
    config_path: Optional[str | Path] = None,
    *,
    env_file: Optional[str | Path] = ENV_PATH,
    **overrides: Any,
) -> PipelineConfig:
    """Resolve the effective config.

    Precedence (highest first): *overrides* (CLI flags) > config file >
    ``.env`` > defaults. ``.env`` values only feed ``extra_env``; the process
    environment is never modified.
    """
    config = load_config_yaml(config_path) if config_path else PipelineConfig()
    if env_file:
        config = config.with_env_defaults(read_env_file(env_file))
    return config.with_overrides(**overrides)


def build_pipeline(*, runner: Optional[CommandRunner] = None) -> NativeIndexPipeline:
    """Build the high-level pipeline facade.

    ``runner`` swaps the subprocess layer (tests pass a fake).
    """
    return NativeIndexPipeline(runner=runner)
