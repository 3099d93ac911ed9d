"""
Core protocol primitives for the Confidential Investment Club.

Exports:
    - TransactionStatus, Operation: Caller-facing status vocabulary
    - CreatePhase, VerifyPhase: Protocol phases
    - ProtocolStateMachine: Guards phase transitions and emits StatusEvents
    - StatusNotifier, Notification: Transient status display
"""

from .notifications import Notification, StatusNotifier
from .transaction_status import (
    CreatePhase,
    Operation,
    ProtocolStateMachine,
    StatusEvent,
    TransactionStatus,
    VerifyPhase,
    status_for_phase,
)

__all__ = [
    # Status vocabulary
    "TransactionStatus",
    "Operation",
    "CreatePhase",
    "VerifyPhase",
    "status_for_phase",
    # State machine
    "ProtocolStateMachine",
    "StatusEvent",
    # Notifications
    "StatusNotifier",
    "Notification",
]
