"""
Tests for the protocol state machines and status events.
"""

from __future__ import annotations

import pytest

from src.core.transaction_status import (
    CreatePhase,
    Operation,
    ProtocolStateMachine,
    StatusEvent,
    TransactionStatus,
    VerifyPhase,
    status_for_phase,
)
from src.lib import errors
from src.lib.exceptions import LedgerRejected, StateError


@pytest.fixture()
def emitted() -> list[StatusEvent]:
    return []


class TestStatusForPhase:

    @pytest.mark.parametrize(
        ("phase", "status"),
        [
            (CreatePhase.IDLE, TransactionStatus.IDLE),
            (CreatePhase.ENCRYPTING, TransactionStatus.PENDING),
            (CreatePhase.SUBMITTING, TransactionStatus.PENDING),
            (CreatePhase.CONFIRMING, TransactionStatus.PENDING),
            (CreatePhase.DONE, TransactionStatus.SUCCESS),
            (CreatePhase.ERROR, TransactionStatus.ERROR),
            (VerifyPhase.CHECKING, TransactionStatus.PENDING),
            (VerifyPhase.REQUESTING_PROOF, TransactionStatus.PENDING),
            (VerifyPhase.DONE, TransactionStatus.SUCCESS),
        ],
    )
    def test_mapping(self, phase, status) -> None:
        assert status_for_phase(phase) == status


class TestCreateMachine:

    def test_happy_path_emits_each_phase(self, emitted) -> None:
        machine = ProtocolStateMachine(Operation.CREATE, emitted.append)
        machine.advance(CreatePhase.ENCRYPTING, "Creating encrypted investment...")
        machine.advance(CreatePhase.SUBMITTING, "Submitting encrypted investment...")
        machine.record_id = "investment-1"
        machine.advance(CreatePhase.CONFIRMING, "Waiting for confirmation...")
        machine.advance(CreatePhase.DONE, "Investment created!")

        assert [e.phase for e in emitted] == [
            CreatePhase.ENCRYPTING,
            CreatePhase.SUBMITTING,
            CreatePhase.CONFIRMING,
            CreatePhase.DONE,
        ]
        assert [e.status for e in emitted] == [
            TransactionStatus.PENDING,
            TransactionStatus.PENDING,
            TransactionStatus.PENDING,
            TransactionStatus.SUCCESS,
        ]
        assert emitted[-1].record_id == "investment-1"
        assert emitted[-1].is_terminal
        assert machine.last_event is emitted[-1]

    def test_skipping_a_phase_is_illegal(self, emitted) -> None:
        machine = ProtocolStateMachine(Operation.CREATE, emitted.append)
        machine.advance(CreatePhase.ENCRYPTING, "...")
        with pytest.raises(StateError):
            machine.advance(CreatePhase.CONFIRMING, "...")
        assert machine.phase == CreatePhase.ENCRYPTING

    def test_cannot_finish_from_idle(self, emitted) -> None:
        machine = ProtocolStateMachine(Operation.CREATE, emitted.append)
        with pytest.raises(StateError):
            machine.advance(CreatePhase.DONE, "...")
        assert emitted == []

    def test_fail_carries_code_and_translated_message(self, emitted) -> None:
        machine = ProtocolStateMachine(Operation.CREATE, emitted.append)
        machine.advance(CreatePhase.ENCRYPTING, "...")
        machine.advance(CreatePhase.SUBMITTING, "...")
        error = LedgerRejected("user denied")
        event = machine.fail(error)

        assert event.status == TransactionStatus.ERROR
        assert event.phase == CreatePhase.ERROR
        assert event.error_code == errors.TRANSACTION_REJECTED
        assert event.message == "Transaction rejected"
        assert event.error is error

    def test_fail_with_explicit_code(self, emitted) -> None:
        machine = ProtocolStateMachine(Operation.VERIFY, emitted.append, record_id="r1")
        machine.advance(VerifyPhase.CHECKING, "...")
        event = machine.fail(LedgerRejected("no"), code=errors.VERIFICATION_FAILED)
        assert event.error_code == errors.VERIFICATION_FAILED
        assert event.message == "Verification failed"

    def test_terminal_phases_are_final(self, emitted) -> None:
        machine = ProtocolStateMachine(Operation.CREATE, emitted.append)
        machine.advance(CreatePhase.ENCRYPTING, "...")
        machine.fail(LedgerRejected("no"))
        with pytest.raises(StateError):
            machine.advance(CreatePhase.ENCRYPTING, "again")
        with pytest.raises(StateError):
            machine.fail(LedgerRejected("twice"))
        assert machine.phase == CreatePhase.ERROR
        assert len(emitted) == 2

    def test_no_machine_for_availability(self, emitted) -> None:
        with pytest.raises(StateError):
            ProtocolStateMachine(Operation.AVAILABILITY, emitted.append)


class TestVerifyMachine:

    def test_already_verified_short_circuit(self, emitted) -> None:
        machine = ProtocolStateMachine(Operation.VERIFY, emitted.append, record_id="r1")
        machine.advance(VerifyPhase.CHECKING, "...")
        event = machine.advance(VerifyPhase.DONE, "Investment already verified", clear_value=5)
        assert event.clear_value == 5
        assert event.record_id == "r1"

    def test_full_path(self, emitted) -> None:
        machine = ProtocolStateMachine(Operation.VERIFY, emitted.append, record_id="r1")
        for phase in (
            VerifyPhase.CHECKING,
            VerifyPhase.REQUESTING_PROOF,
            VerifyPhase.SUBMITTING,
            VerifyPhase.DONE,
        ):
            machine.advance(phase, phase.value)
        assert machine.status == TransactionStatus.SUCCESS
        assert len(emitted) == 4

    def test_cannot_submit_without_proof(self, emitted) -> None:
        machine = ProtocolStateMachine(Operation.VERIFY, emitted.append, record_id="r1")
        machine.advance(VerifyPhase.CHECKING, "...")
        with pytest.raises(StateError):
            machine.advance(VerifyPhase.SUBMITTING, "...")


class TestStatusEvent:

    def test_to_dict_omits_empty_optionals(self) -> None:
        event = StatusEvent(
            operation=Operation.CREATE,
            status=TransactionStatus.PENDING,
            message="Creating encrypted investment...",
            phase=CreatePhase.ENCRYPTING,
        )
        data = event.to_dict()
        assert data["operation"] == "create"
        assert data["status"] == "pending"
        assert data["phase"] == "encrypting"
        assert "error_code" not in data
        assert "clear_value" not in data

    def test_pending_is_not_terminal(self) -> None:
        event = StatusEvent(Operation.CREATE, TransactionStatus.PENDING, "...")
        assert not event.is_terminal
