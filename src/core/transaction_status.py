"""
Transaction Status State Machines.

Defines the phases of the two state-changing protocols and the status
events they emit.

Create protocol:
    IDLE -> ENCRYPTING -> SUBMITTING -> CONFIRMING -> DONE
Verify protocol:
    IDLE -> CHECKING -> REQUESTING_PROOF -> SUBMITTING -> DONE
    CHECKING -> DONE when the record is already verified

Any non-terminal phase may move to ERROR. DONE and ERROR are final: a new
run gets a new machine. Each phase maps onto the caller-facing transaction
status: idle -> pending -> success, or idle -> pending -> error. The return
to idle is the controller's create_status once the run has ended.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import structlog

from src.lib.errors import get_error_message
from src.lib.exceptions import ClubException, StateError

logger = structlog.get_logger(__name__)


# =============================================================================
# Enums
# =============================================================================

class TransactionStatus(StrEnum):
    """Caller-facing status of an operation."""

    IDLE = "idle"
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


class Operation(StrEnum):
    """Operations that publish status events."""

    CREATE = "create"
    VERIFY = "verify"
    AVAILABILITY = "availability"


class CreatePhase(StrEnum):
    """Phases of the create protocol."""

    IDLE = "idle"
    ENCRYPTING = "encrypting"
    SUBMITTING = "submitting"
    CONFIRMING = "confirming"
    DONE = "done"
    ERROR = "error"


class VerifyPhase(StrEnum):
    """Phases of the verify protocol."""

    IDLE = "idle"
    CHECKING = "checking"
    REQUESTING_PROOF = "requesting_proof"
    SUBMITTING = "submitting"
    DONE = "done"
    ERROR = "error"


Phase = CreatePhase | VerifyPhase

_CREATE_TRANSITIONS: dict[CreatePhase, frozenset[CreatePhase]] = {
    CreatePhase.IDLE: frozenset({CreatePhase.ENCRYPTING, CreatePhase.ERROR}),
    CreatePhase.ENCRYPTING: frozenset({CreatePhase.SUBMITTING, CreatePhase.ERROR}),
    CreatePhase.SUBMITTING: frozenset({CreatePhase.CONFIRMING, CreatePhase.ERROR}),
    CreatePhase.CONFIRMING: frozenset({CreatePhase.DONE, CreatePhase.ERROR}),
    CreatePhase.DONE: frozenset(),
    CreatePhase.ERROR: frozenset(),
}

_VERIFY_TRANSITIONS: dict[VerifyPhase, frozenset[VerifyPhase]] = {
    VerifyPhase.IDLE: frozenset({VerifyPhase.CHECKING, VerifyPhase.ERROR}),
    VerifyPhase.CHECKING: frozenset(
        {VerifyPhase.REQUESTING_PROOF, VerifyPhase.DONE, VerifyPhase.ERROR}
    ),
    VerifyPhase.REQUESTING_PROOF: frozenset({VerifyPhase.SUBMITTING, VerifyPhase.ERROR}),
    VerifyPhase.SUBMITTING: frozenset({VerifyPhase.DONE, VerifyPhase.ERROR}),
    VerifyPhase.DONE: frozenset(),
    VerifyPhase.ERROR: frozenset(),
}


def status_for_phase(phase: Phase) -> TransactionStatus:
    """Map a protocol phase onto the caller-facing transaction status."""
    if phase.value == "idle":
        return TransactionStatus.IDLE
    if phase.value == "done":
        return TransactionStatus.SUCCESS
    if phase.value == "error":
        return TransactionStatus.ERROR
    return TransactionStatus.PENDING


# =============================================================================
# Status Event
# =============================================================================

@dataclass(frozen=True)
class StatusEvent:
    """A single observable status change.

    Attributes:
        operation: Which operation emitted the event
        phase: Protocol phase (None for one-shot operations)
        status: Caller-facing transaction status
        message: Human-readable status text
        record_id: Record the event refers to, when known
        error_code: Error code for ERROR events
        error: The exception behind an ERROR event
        clear_value: Clear amount on a successful verify
        timestamp: Wall-clock time of the event
    """

    operation: Operation
    status: TransactionStatus
    message: str
    phase: Phase | None = None
    record_id: str | None = None
    error_code: str | None = None
    error: ClubException | None = field(default=None, compare=False)
    clear_value: int | None = None
    timestamp: float = field(default_factory=time.time, compare=False)

    @property
    def is_terminal(self) -> bool:
        return self.status in (TransactionStatus.SUCCESS, TransactionStatus.ERROR)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data: dict[str, Any] = {
            "operation": self.operation.value,
            "status": self.status.value,
            "message": self.message,
            "phase": self.phase.value if self.phase is not None else None,
            "record_id": self.record_id,
            "timestamp": self.timestamp,
        }
        if self.error_code is not None:
            data["error_code"] = self.error_code
        if self.clear_value is not None:
            data["clear_value"] = self.clear_value
        return data


# =============================================================================
# State Machine
# =============================================================================

class ProtocolStateMachine:
    """Tracks one run of a protocol and emits a StatusEvent per transition.

    Illegal transitions raise StateError; they indicate a controller bug,
    never a collaborator failure.

    Args:
        operation: CREATE or VERIFY
        emit: Callback receiving every emitted event
        record_id: Record the run refers to, if already known
    """

    def __init__(
        self,
        operation: Operation,
        emit: Callable[[StatusEvent], None],
        record_id: str | None = None,
    ) -> None:
        if operation == Operation.CREATE:
            self._transitions: dict[Any, frozenset[Any]] = _CREATE_TRANSITIONS
            self._phase: Phase = CreatePhase.IDLE
            self._phase_type: type[CreatePhase] | type[VerifyPhase] = CreatePhase
        elif operation == Operation.VERIFY:
            self._transitions = _VERIFY_TRANSITIONS
            self._phase = VerifyPhase.IDLE
            self._phase_type = VerifyPhase
        else:
            raise StateError(f"No state machine for operation {operation!r}")
        self.operation = operation
        self.record_id = record_id
        self._emit = emit
        self.last_event: StatusEvent | None = None

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def status(self) -> TransactionStatus:
        return status_for_phase(self._phase)

    def _move(self, target: Phase) -> None:
        allowed = self._transitions[self._phase]
        if target not in allowed:
            raise StateError(
                f"Illegal {self.operation.value} transition: "
                f"{self._phase.value} -> {target.value}"
            )
        logger.info(
            "protocol_transition",
            operation=self.operation.value,
            record_id=self.record_id,
            source=self._phase.value,
            target=target.value,
        )
        self._phase = target

    def advance(
        self,
        target: Phase,
        message: str,
        clear_value: int | None = None,
    ) -> StatusEvent:
        """Move to `target` and emit the matching event."""
        self._move(target)
        event = StatusEvent(
            operation=self.operation,
            status=status_for_phase(target),
            message=message,
            phase=target,
            record_id=self.record_id,
            clear_value=clear_value,
        )
        self.last_event = event
        self._emit(event)
        return event

    def fail(self, error: ClubException, code: str | None = None) -> StatusEvent:
        """Move to ERROR carrying the error and a translated reason."""
        error_code = code or error.code
        self._move(self._phase_type.ERROR)
        event = StatusEvent(
            operation=self.operation,
            status=TransactionStatus.ERROR,
            message=get_error_message(error_code),
            phase=self._phase,
            record_id=self.record_id,
            error_code=error_code,
            error=error,
        )
        self.last_event = event
        self._emit(event)
        return event
