"""
Investment Lifecycle Controller.

Orchestrates the two state-changing protocols of the club and the
read-back of the record set:

- Create:  validate -> encrypt -> submit -> confirm -> refresh
- Verify:  check -> request decryption proof -> submit proof -> confirm
- Load:    list ids -> read every record -> recompute statistics

Every step is a transition of a ProtocolStateMachine; each transition is
published to the StatusNotifier and, for create, streamed to the caller.
Collaborator failures are caught at the step boundary and turned into a
terminal ERROR event carrying a readable reason. Records are immutable and
the cached set is swapped in one assignment, so no caller ever observes a
record whose verified flag and clear amount disagree.

Concurrency (asyncio, one controller per wallet session):
- one create in flight per controller, a second one raises ConflictError
- one verify in flight per record id
- before ledger submission an abandoned operation is cancelled and its slot
  released; after submission it runs to completion in the background

"""

from __future__ import annotations

import asyncio
import secrets
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, TypeVar

import structlog

from src.config.settings import ClubSettings
from src.core.notifications import StatusNotifier
from src.core.transaction_status import (
    CreatePhase,
    Operation,
    ProtocolStateMachine,
    StatusEvent,
    TransactionStatus,
    VerifyPhase,
)
from src.lib import errors
from src.lib.errors import get_error_message
from src.lib.exceptions import (
    ClubException,
    ConflictError,
    DecryptionError,
    EncryptionError,
    LedgerError,
    LedgerFailed,
    LedgerRejected,
    NotConnectedError,
    StateError,
)
from src.models.investment import (
    DEFAULT_RISK_LEVEL,
    MAX_RISK_LEVEL,
    MIN_RISK_LEVEL,
    ClubStatistics,
    InvestmentInput,
    InvestmentRecord,
    UnverifiedAmount,
    VerifiedAmount,
    validate_investment_input,
)
from src.services.gateways import (
    DecryptionResult,
    DecryptionVerifier,
    EncryptedInput,
    EncryptionGateway,
    LedgerRecordStore,
    RecordFields,
    SubmissionResult,
)
from src.services.statistics import compute_statistics as aggregate_statistics

logger = structlog.get_logger(__name__)

T = TypeVar("T")

RecordsListener = Callable[[list[InvestmentRecord], ClubStatistics], None]

# Wallet / node messages that mean the signer refused, not that the write broke
_DECLINE_MARKERS: tuple[str, ...] = ("rejected", "denied", "declined")


# =============================================================================
# Helpers
# =============================================================================

def record_from_fields(fields: RecordFields) -> InvestmentRecord:
    """Build an InvestmentRecord from ledger fields, clear amount only if verified.

    The ledger is authoritative: a stored risk level outside the accepted
    range is read as DEFAULT_RISK_LEVEL instead of hiding the record.

    Raises:
        StateError: If the ledger reports a verified record without an amount
    """
    if fields.is_verified:
        if fields.clear_amount is None:
            raise StateError(f"Ledger reports record {fields.id} verified without a clear amount")
        amount: UnverifiedAmount | VerifiedAmount = VerifiedAmount(
            fields.encrypted_amount_handle, fields.clear_amount
        )
    else:
        amount = UnverifiedAmount(fields.encrypted_amount_handle)

    risk_level = fields.risk_level
    if not MIN_RISK_LEVEL <= risk_level <= MAX_RISK_LEVEL:
        logger.warning(
            "risk_level_out_of_range",
            record_id=fields.id,
            stored=risk_level,
            used=DEFAULT_RISK_LEVEL,
        )
        risk_level = DEFAULT_RISK_LEVEL

    return InvestmentRecord(
        id=fields.id,
        name=fields.name,
        description=fields.description,
        creator=fields.creator,
        created_at=fields.created_at,
        risk_level=risk_level,
        public_signal=fields.public_signal,
        amount=amount,
    )


def classify_ledger_failure(exc: BaseException) -> LedgerError:
    """Map a ledger client exception to LedgerRejected or LedgerFailed."""
    if isinstance(exc, LedgerError):
        return exc
    message = str(exc) or type(exc).__name__
    if any(marker in message.lower() for marker in _DECLINE_MARKERS):
        return LedgerRejected(message)
    return LedgerFailed(message)


def default_record_id(prefix: str = "investment-") -> str:
    """Time-based id with a random suffix, e.g. investment-1700000000000000000-9f2c01ab."""
    return f"{prefix}{time.time_ns()}-{secrets.token_hex(4)}"


@dataclass
class _CreateRun:
    request: InvestmentInput
    submitter: str
    committed: bool = False  # set once the ledger write has been issued


# =============================================================================
# Controller
# =============================================================================

class InvestmentLifecycleController:
    """
    Supervises record creation, verification and read-back for one session.

    Args:
        gateway: Client-side encryption of amounts
        ledger: Record store, bound to the session's signer
        verifier: Off-chain decryption with proof
        submitter: Connected wallet address, None when disconnected
        settings: Runtime settings (contract address, timeouts, id prefix)
        notifier: Receives every status event (one is created if omitted)
        id_factory: Generates record ids (time + random by default)
    """

    def __init__(
        self,
        gateway: EncryptionGateway,
        ledger: LedgerRecordStore,
        verifier: DecryptionVerifier,
        submitter: str | None,
        settings: ClubSettings | None = None,
        notifier: StatusNotifier | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._gateway = gateway
        self._ledger = ledger
        self._verifier = verifier
        self._submitter = submitter
        self._settings = settings or ClubSettings()
        self._notifier = notifier or StatusNotifier(
            success_clear_seconds=self._settings.success_clear_seconds,
            error_clear_seconds=self._settings.error_clear_seconds,
        )
        self._id_factory = id_factory or (
            lambda: default_record_id(self._settings.record_id_prefix)
        )

        self._records: dict[str, InvestmentRecord] = {}
        self._statistics = ClubStatistics()
        self._listeners: list[RecordsListener] = []
        self._create_in_flight = False
        self._verify_in_flight: set[str] = set()
        self._log = logger.bind(submitter=submitter)

    # -------------------------------------------------------------------------
    # Read-only state
    # -------------------------------------------------------------------------

    @property
    def submitter(self) -> str | None:
        return self._submitter

    @property
    def contract_address(self) -> str:
        return self._settings.contract_address

    @property
    def notifier(self) -> StatusNotifier:
        return self._notifier

    @property
    def records(self) -> list[InvestmentRecord]:
        """Snapshot of the cached record set, in ledger order."""
        return list(self._records.values())

    @property
    def statistics(self) -> ClubStatistics:
        return self._statistics

    @property
    def create_status(self) -> TransactionStatus:
        return TransactionStatus.PENDING if self._create_in_flight else TransactionStatus.IDLE

    @property
    def is_busy(self) -> bool:
        """True while any create or verify is in flight."""
        return self._create_in_flight or bool(self._verify_in_flight)

    def is_verifying(self, record_id: str) -> bool:
        return record_id in self._verify_in_flight

    def on_records_changed(self, listener: RecordsListener) -> Callable[[], None]:
        """Subscribe to record-set changes. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # -------------------------------------------------------------------------
    # Statistics
    # -------------------------------------------------------------------------

    def compute_statistics(self, records: Iterable[InvestmentRecord] | None = None) -> ClubStatistics:
        """Club statistics for `records` (the cached set when omitted)."""
        return aggregate_statistics(self.records if records is None else records)

    # -------------------------------------------------------------------------
    # Load
    # -------------------------------------------------------------------------

    async def load_all(self) -> list[InvestmentRecord]:
        """
        Reload every record from the ledger and recompute statistics.

        Verification status and clear amounts come straight from the store;
        the cached set is replaced wholesale so no stale clear value
        survives. Records that fail to load are logged and skipped.

        Raises:
            LedgerError: If the record ids cannot be listed
        """
        record_ids = await self._ledger_call(self._ledger.list_record_ids())
        results = await asyncio.gather(
            *(self._read_record(record_id) for record_id in record_ids),
            return_exceptions=True,
        )

        loaded: dict[str, InvestmentRecord] = {}
        for record_id, result in zip(record_ids, results):
            if isinstance(result, ClubException):
                self._log.warning(
                    "record_load_failed",
                    record_id=record_id,
                    error_code=result.code,
                    error=str(result),
                )
                continue
            if isinstance(result, BaseException):
                raise result
            loaded[record_id] = result

        self._records = loaded
        self._records_changed()
        self._log.info(
            "records_loaded",
            total=len(loaded),
            skipped=len(record_ids) - len(loaded),
        )
        return list(loaded.values())

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    async def create_investment(
        self,
        data: InvestmentInput | Mapping[str, Any],
    ) -> AsyncIterator[StatusEvent]:
        """
        Run the create protocol, yielding every status event.

        The stream ends with a terminal event: SUCCESS (record created and
        the record set refreshed) or ERROR (no record written, or the write
        was declined/failed).

        Raises:
            ValidationError: Invalid input, raised before any side effect
            NotConnectedError: No wallet connected
            ConflictError: Another create is still in flight
        """
        run = self._begin_create(data)
        events: asyncio.Queue[StatusEvent] = asyncio.Queue()
        task = asyncio.create_task(self._run_create(run, events.put_nowait))
        try:
            while True:
                event = await events.get()
                yield event
                if event.is_terminal:
                    break
        finally:
            if not task.done() and not run.committed:
                task.cancel()
        await task

    async def submit_investment(self, data: InvestmentInput | Mapping[str, Any]) -> InvestmentRecord:
        """
        Run the create protocol to completion and return the new record.

        Raises:
            ClubException: The error carried by the terminal ERROR event
        """
        final: StatusEvent | None = None
        async for event in self.create_investment(data):
            final = event

        if final is None or final.status != TransactionStatus.SUCCESS or final.record_id is None:
            if final is not None and final.error is not None:
                raise final.error
            raise StateError("Create protocol ended without a terminal event")

        record = self._records.get(final.record_id)
        if record is None:
            record = await self._read_record(final.record_id)
        return record

    def _begin_create(self, data: InvestmentInput | Mapping[str, Any]) -> _CreateRun:
        try:
            request = validate_investment_input(data)
            if not self._submitter:
                raise NotConnectedError("No wallet connected")
            if self._create_in_flight:
                raise ConflictError("A create operation is already pending")
        except ClubException as exc:
            self._publish_rejection(Operation.CREATE, exc)
            raise
        self._create_in_flight = True
        return _CreateRun(request=request, submitter=self._submitter)

    async def _run_create(self, run: _CreateRun, emit: Callable[[StatusEvent], None]) -> None:
        def publish(event: StatusEvent) -> None:
            self._notifier.publish(event)
            emit(event)

        machine = ProtocolStateMachine(Operation.CREATE, publish)
        try:
            await self._drive_create(run, machine)
        except ClubException as exc:
            self._log.warning(
                "create_failed",
                record_id=machine.record_id,
                phase=machine.phase.value,
                error_code=exc.code,
                error=str(exc),
            )
            machine.fail(exc)
        except asyncio.CancelledError:
            self._log.info("create_abandoned", phase=machine.phase.value)
            self._notifier.clear()
            raise
        except Exception as exc:
            self._log.exception("create_crashed", phase=machine.phase.value)
            machine.fail(StateError(f"Unexpected failure while {machine.phase.value}: {exc}"))
            raise
        finally:
            self._create_in_flight = False

    async def _drive_create(self, run: _CreateRun, machine: ProtocolStateMachine) -> None:
        request = run.request

        machine.advance(CreatePhase.ENCRYPTING, "Creating encrypted investment...")
        encrypted = await self._encrypt(run.submitter, request.amount)

        machine.advance(CreatePhase.SUBMITTING, "Submitting encrypted investment...")
        record_id = await self._allocate_record_id()
        machine.record_id = record_id

        # From here on the write may reach the ledger and must not be abandoned
        run.committed = True
        tx = await self._ledger_call(
            self._ledger.create_record(
                record_id,
                request.name,
                encrypted.handle,
                encrypted.proof,
                request.risk_level,
                request.public_signal,
                request.description,
            )
        )

        machine.advance(CreatePhase.CONFIRMING, "Waiting for confirmation...")
        result = await self._ledger_call(tx.wait())
        self._raise_for_result(result, f"creation of {record_id}")

        await self._refresh_after_write()
        machine.advance(CreatePhase.DONE, "Investment created!")

    async def _encrypt(self, submitter: str, amount: int) -> EncryptedInput:
        try:
            return await self._with_timeout(
                self._gateway.encrypt(self.contract_address, submitter, amount)
            )
        except TimeoutError as exc:
            raise EncryptionError("No response from the encryption gateway") from exc
        except ClubException:
            raise
        except Exception as exc:
            raise EncryptionError(str(exc) or type(exc).__name__) from exc

    async def _allocate_record_id(self) -> str:
        candidate = self._id_factory()
        existing = set(await self._ledger_call(self._ledger.list_record_ids()))
        if candidate in existing or candidate in self._records:
            self._log.error("record_id_collision", record_id=candidate)
            raise StateError(f"Generated record id {candidate!r} collides with an existing record")
        return candidate

    async def _refresh_after_write(self) -> None:
        try:
            await self.load_all()
        except ClubException as exc:
            # The write is confirmed; a failed refresh only delays visibility
            self._log.warning("refresh_failed", error_code=exc.code, error=str(exc))

    # -------------------------------------------------------------------------
    # Verify
    # -------------------------------------------------------------------------

    async def verify_and_decrypt(self, record_id: str) -> int | None:
        """
        Reveal a record's amount through a proof-checked verification.

        Returns:
            The clear amount, or None if verification did not succeed (the
            reason is published as an ERROR status)

        Raises:
            ConflictError: A verification of this record is already in flight
        """
        try:
            event = await self.verify_record(record_id)
        except NotConnectedError:
            return None
        if event.status != TransactionStatus.SUCCESS:
            return None
        return event.clear_value

    async def verify_record(self, record_id: str) -> StatusEvent:
        """
        Run the verify protocol for `record_id` and return its terminal event.

        An already verified record short-circuits in CHECKING without
        touching the decryption verifier.

        Raises:
            NotConnectedError: No wallet connected
            ConflictError: A verification of this record is already in flight
        """
        try:
            if not self._submitter:
                raise NotConnectedError("No wallet connected")
            if record_id in self._verify_in_flight:
                raise ConflictError(f"Verification of {record_id} is already pending")
        except ClubException as exc:
            self._publish_rejection(Operation.VERIFY, exc, record_id)
            raise

        self._verify_in_flight.add(record_id)
        machine = ProtocolStateMachine(Operation.VERIFY, self._notifier.publish, record_id=record_id)
        release_slot = True
        try:
            machine.advance(VerifyPhase.CHECKING, "Checking verification status...")
            record = await self._read_record(record_id)
            if record.is_verified:
                self._store_record(record)
                return machine.advance(
                    VerifyPhase.DONE,
                    "Investment already verified",
                    clear_value=record.clear_amount,
                )

            machine.advance(VerifyPhase.REQUESTING_PROOF, "Requesting decryption proof...")
            handle = await self._ledger_call(self._ledger.get_encrypted_amount_handle(record_id))
            decryption = await self._decrypt([handle])
            clear_value = decryption.clear_values.get(handle)
            if clear_value is None:
                raise DecryptionError(f"Verifier returned no clear value for {handle}")

            machine.advance(VerifyPhase.SUBMITTING, "Submitting decryption proof...")
            submission = asyncio.ensure_future(
                self._confirm_verification(record, decryption, clear_value)
            )
            try:
                confirmed = await asyncio.shield(submission)
            except asyncio.CancelledError:
                if not submission.done():
                    # The proof is on its way to the ledger; finish in the background
                    release_slot = False
                    submission.add_done_callback(
                        lambda task: self._finish_detached_verification(task, machine)
                    )
                raise
            return machine.advance(
                VerifyPhase.DONE,
                "Investment verified!",
                clear_value=confirmed.clear_amount,
            )
        except ClubException as exc:
            return self._fail_verification(machine, exc)
        except asyncio.CancelledError:
            self._log.info("verify_abandoned", record_id=record_id, phase=machine.phase.value)
            if release_slot:
                self._notifier.clear()
            raise
        except Exception as exc:
            self._log.exception("verify_crashed", record_id=record_id, phase=machine.phase.value)
            machine.fail(StateError(f"Unexpected failure while {machine.phase.value}: {exc}"))
            raise
        finally:
            if release_slot:
                self._verify_in_flight.discard(record_id)

    async def _decrypt(self, handles: list[Any]) -> DecryptionResult:
        try:
            return await self._with_timeout(
                self._verifier.request_decryption(handles, self.contract_address)
            )
        except TimeoutError as exc:
            raise DecryptionError("No response from the decryption verifier") from exc
        except ClubException:
            raise
        except Exception as exc:
            raise DecryptionError(str(exc) or type(exc).__name__) from exc

    async def _confirm_verification(
        self,
        record: InvestmentRecord,
        decryption: DecryptionResult,
        clear_value: int,
    ) -> InvestmentRecord:
        tx = await self._ledger_call(
            self._ledger.submit_verification_proof(
                record.id, decryption.encoded_clear_values, decryption.proof
            )
        )
        result = await self._ledger_call(tx.wait())
        self._raise_for_result(result, f"verification of {record.id}")

        try:
            confirmed = await self._read_record(record.id)
        except ClubException as exc:
            # Accepted transaction is the store's confirmation; the re-read is best effort
            self._log.warning("verify_reread_failed", record_id=record.id, error=str(exc))
            confirmed = record.with_verified_amount(clear_value)
        else:
            if not confirmed.is_verified:
                raise StateError(f"Ledger accepted proof for {record.id} but reports it unverified")
            if confirmed.clear_amount != clear_value:
                self._log.warning(
                    "verified_amount_mismatch",
                    record_id=record.id,
                    decrypted=clear_value,
                    stored=confirmed.clear_amount,
                )

        self._store_record(confirmed)
        return confirmed

    def _fail_verification(self, machine: ProtocolStateMachine, exc: ClubException) -> StatusEvent:
        if isinstance(exc, LedgerRejected):
            code = errors.TRANSACTION_REJECTED
        elif isinstance(exc, LedgerError):
            code = errors.VERIFICATION_FAILED
        else:
            code = exc.code
        self._log.warning(
            "verify_failed",
            record_id=machine.record_id,
            phase=machine.phase.value,
            error_code=code,
            error=str(exc),
        )
        return machine.fail(exc, code=code)

    def _finish_detached_verification(
        self,
        task: asyncio.Future[InvestmentRecord],
        machine: ProtocolStateMachine,
    ) -> None:
        record_id = machine.record_id or ""
        self._verify_in_flight.discard(record_id)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            machine.advance(
                VerifyPhase.DONE,
                "Investment verified!",
                clear_value=task.result().clear_amount,
            )
        elif isinstance(exc, ClubException):
            self._fail_verification(machine, exc)
        else:
            self._log.error("detached_verify_crashed", record_id=record_id, error=repr(exc))
            machine.fail(StateError(f"Unexpected failure while {machine.phase.value}: {exc}"))

    # -------------------------------------------------------------------------
    # Availability
    # -------------------------------------------------------------------------

    async def check_service_available(self) -> bool:
        """Ask the ledger whether the FHE service is available and publish the answer."""
        try:
            available = bool(await self._ledger_call(self._ledger.is_service_available()))
        except ClubException as exc:
            self._log.warning("availability_check_failed", error=str(exc))
            available = False

        if available:
            self._notifier.publish(
                StatusEvent(
                    operation=Operation.AVAILABILITY,
                    status=TransactionStatus.SUCCESS,
                    message="FHE System Available!",
                )
            )
        else:
            self._notifier.publish(
                StatusEvent(
                    operation=Operation.AVAILABILITY,
                    status=TransactionStatus.ERROR,
                    message=get_error_message(errors.SERVICE_UNAVAILABLE),
                    error_code=errors.SERVICE_UNAVAILABLE,
                )
            )
        return available

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _with_timeout(self, awaitable: Awaitable[T]) -> T:
        timeout = self._settings.call_timeout_seconds
        if timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout)

    async def _ledger_call(self, awaitable: Awaitable[T]) -> T:
        """Await a ledger client call, normalising failures to LedgerError."""
        try:
            return await self._with_timeout(awaitable)
        except TimeoutError as exc:
            raise LedgerFailed("No response from the ledger") from exc
        except ClubException:
            raise
        except Exception as exc:
            raise classify_ledger_failure(exc) from exc

    async def _read_record(self, record_id: str) -> InvestmentRecord:
        fields = await self._ledger_call(self._ledger.get_record(record_id))
        return record_from_fields(fields)

    @staticmethod
    def _raise_for_result(result: SubmissionResult, action: str) -> None:
        if result == SubmissionResult.ACCEPTED:
            return
        if result == SubmissionResult.DECLINED:
            raise LedgerRejected(f"Signer declined the {action}")
        raise LedgerFailed(f"Ledger did not accept the {action} ({result})")

    def _store_record(self, record: InvestmentRecord) -> None:
        records = dict(self._records)
        records[record.id] = record
        self._records = records
        self._records_changed()

    def _records_changed(self) -> None:
        snapshot = self.records
        self._statistics = aggregate_statistics(snapshot)
        for listener in list(self._listeners):
            try:
                listener(snapshot, self._statistics)
            except Exception:
                # The cache is already swapped; a broken listener cannot undo a ledger write
                self._log.exception("records_listener_failed", total=len(snapshot))

    def _publish_rejection(
        self,
        operation: Operation,
        exc: ClubException,
        record_id: str | None = None,
    ) -> None:
        self._log.warning(
            "operation_rejected",
            operation=operation.value,
            record_id=record_id,
            error_code=exc.code,
            error=str(exc),
        )
        self._notifier.publish(
            StatusEvent(
                operation=operation,
                status=TransactionStatus.ERROR,
                message=get_error_message(exc.code),
                record_id=record_id,
                error_code=exc.code,
                error=exc,
            )
        )
