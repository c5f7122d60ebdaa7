"""pipeline.build

Build Orchestrator + Fallback Controller.

- :mod:`pipeline.build.orchestrator`      – two-pass build policy
- :mod:`pipeline.build.fallback`          – bounded-retry state machine
- :mod:`pipeline.build.strategies`        – recording strategy registry
- :mod:`pipeline.build.compilation_record`– compile_commands.json IO
"""

from .compilation_record import load_compilation_record, write_compilation_record
from .fallback import FallbackController, FallbackState, Transition
from .orchestrator import BuildOrchestrator, BuildOutcome, format_build_command
from .strategies import STRATEGIES, SUPPORTED_STRATEGIES, InstrumentationStrategy, build_strategy

__all__ = [
    "BuildOrchestrator",
    "BuildOutcome",
    "FallbackController",
    "FallbackState",
    "InstrumentationStrategy",
    "STRATEGIES",
    "SUPPORTED_STRATEGIES",
    "Transition",
    "build_strategy",
    "format_build_command",
    "load_compilation_record",
    "write_compilation_record",
]
