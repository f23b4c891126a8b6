from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, List

from queryproc.common.logger import get_logger

logger = get_logger(__name__)


class ProcessingState(str, Enum):
    RECEIVED = "RECEIVED"
    COMPILING = "COMPILING"
    EXECUTING = "EXECUTING"
    NORMALIZING = "NORMALIZING"
    ASSEMBLING = "ASSEMBLING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessingState.COMPLETED, ProcessingState.FAILED)


TRANSITIONS: Dict[ProcessingState, FrozenSet[ProcessingState]] = {
    ProcessingState.RECEIVED: frozenset({ProcessingState.COMPILING, ProcessingState.FAILED}),
    ProcessingState.COMPILING: frozenset({ProcessingState.EXECUTING, ProcessingState.FAILED}),
    ProcessingState.EXECUTING: frozenset({ProcessingState.NORMALIZING, ProcessingState.FAILED}),
    ProcessingState.NORMALIZING: frozenset({ProcessingState.ASSEMBLING, ProcessingState.FAILED}),
    ProcessingState.ASSEMBLING: frozenset({ProcessingState.COMPLETED, ProcessingState.FAILED}),
    ProcessingState.COMPLETED: frozenset(),
    ProcessingState.FAILED: frozenset(),
}


class InvalidTransitionError(RuntimeError):
    pass


class RequestLifecycle:
    """Tracks one request through the processing states."""

    def __init__(self) -> None:
        self.state = ProcessingState.RECEIVED
        self.history: List[ProcessingState] = [ProcessingState.RECEIVED]

    def advance(self, target: ProcessingState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise InvalidTransitionError(f"Cannot move from {self.state.value} to {target.value}")
        logger.debug(f"State {self.state.value} -> {target.value}")
        self.state = target
        self.history.append(target)

    def fail(self) -> ProcessingState:
        """Moves to FAILED and returns the state the failure occurred in."""
        stage = self.state
        if not stage.is_terminal:
            self.advance(ProcessingState.FAILED)
        return stage
