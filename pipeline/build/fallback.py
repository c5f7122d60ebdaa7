"""pipeline.build.fallback

Fallback Controller: what to do when the primary instrumented build fails or
records nothing.

States::

    PRIMARY --> RETRYING --> RECOVERED
       |            |
       +------------+-----> EXHAUSTED

The retry budget is fixed at one. The two strategies are different
mechanisms, so repeating either would only reproduce the same failure.
RECOVERED and EXHAUSTED are terminal: once the budget is spent, every further
call fails without running anything.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple

from pipeline.errors import InstrumentationError
from pipeline.models import BuildAttempt, CompilationRecord, now_iso

logger = logging.getLogger(__name__)


class FallbackState(str, Enum):
    PRIMARY = "primary"
    RETRYING = "retrying"
    RECOVERED = "recovered"
    EXHAUSTED = "exhausted"


_ALLOWED: Dict[FallbackState, FrozenSet[FallbackState]] = {
    FallbackState.PRIMARY: frozenset({FallbackState.RETRYING, FallbackState.EXHAUSTED}),
    FallbackState.RETRYING: frozenset({FallbackState.RECOVERED, FallbackState.EXHAUSTED}),
    FallbackState.RECOVERED: frozenset(),
    FallbackState.EXHAUSTED: frozenset(),
}

TERMINAL_STATES = frozenset({FallbackState.RECOVERED, FallbackState.EXHAUSTED})


@dataclass(frozen=True)
class Transition:
    source: FallbackState
    target: FallbackState
    reason: str
    at: str

    def describe(self) -> str:
        return f"{self.source.value}->{self.target.value}: {self.reason}"


RetryFn = Callable[[], Tuple[BuildAttempt, Optional[CompilationRecord]]]


class FallbackController:
    """Run the alternative recording strategy at most once."""

    RETRY_BUDGET = 1

    def __init__(
        self,
        retry: RetryFn,
        *,
        on_transition: Optional[Callable[[Transition], None]] = None,
    ) -> None:
        self._retry = retry
        self._on_transition = on_transition
        self.state = FallbackState.PRIMARY
        self.retries_used = 0
        self.transitions: List[Transition] = []
        self.retry_attempt: Optional[BuildAttempt] = None

    def _move(self, target: FallbackState, reason: str) -> None:
        if target not in _ALLOWED[self.state]:
            raise RuntimeError(f"illegal fallback transition {self.state.value} -> {target.value}")
        t = Transition(source=self.state, target=target, reason=reason, at=now_iso())
        self.transitions.append(t)
        self.state = target
        logger.info("fallback: %s", t.describe())
        if self._on_transition is not None:
            self._on_transition(t)

    def recover(self, reason: str) -> CompilationRecord:
        """Handle a failed/empty primary attempt.

        Returns the recovered record or raises :class:`InstrumentationError`.
        """
        if self.state in TERMINAL_STATES or self.retries_used >= self.RETRY_BUDGET:
            raise InstrumentationError(
                f"retry budget spent (state={self.state.value}); not retrying: {reason}",
                attempts=[self.retry_attempt] if self.retry_attempt else [],
            )

        self._move(FallbackState.RETRYING, reason)
        self.retries_used += 1
        attempt, record = self._retry()
        self.retry_attempt = attempt

        if attempt.ok and record is not None and not record.is_empty:
            self._move(FallbackState.RECOVERED, f"{attempt.strategy} recorded {len(record)} entries")
            return record

        if not attempt.ok:
            why = "timed out" if attempt.timed_out else f"exit code {attempt.exit_code}"
        else:
            why = "empty compilation record"
        self._move(FallbackState.EXHAUSTED, f"{attempt.strategy}: {why}")
        raise InstrumentationError(
            f"both recording strategies failed (primary: {reason}; fallback: {why})",
            attempts=[attempt],
        )
