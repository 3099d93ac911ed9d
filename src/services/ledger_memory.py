"""
In-memory Ledger for development and tests.

Mimics the investment contract: an append-only record table whose writes go
through transactions that settle asynchronously. Proofs are checked with the
LocalFheBackend before any state change is accepted.

- InMemoryLedger: the shared table (one per process / test)
- InMemoryLedgerClient: a signer-bound view implementing LedgerRecordStore;
  each wallet session gets its own client

Writes are applied when the transaction is awaited (`wait()`), so a read
that overlaps a not-yet-confirmed create does not see the new record.
"""

from __future__ import annotations

import asyncio
import itertools
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace

import structlog

from src.lib.exceptions import RecordNotFoundError
from src.models.investment import CiphertextHandle
from src.services.gateways import RecordFields, SubmissionResult, decode_clear_values
from src.services.local_fhe import LocalFheBackend

logger = structlog.get_logger(__name__)

# Decides whether the signer approves an action ("create_record", "verify")
SignerApproval = Callable[[str], bool]


def _always_approve(action: str) -> bool:
    return True


class PendingTransaction:
    """A ledger write that is applied once, the first time it is awaited."""

    def __init__(
        self,
        tx_hash: str,
        apply: Callable[[], Awaitable[SubmissionResult]],
        delay: float = 0.0,
    ) -> None:
        self.tx_hash = tx_hash
        self._apply = apply
        self._delay = delay
        self._result: SubmissionResult | None = None
        self._lock = asyncio.Lock()

    async def wait(self) -> SubmissionResult:
        async with self._lock:
            if self._result is None:
                if self._delay:
                    await asyncio.sleep(self._delay)
                self._result = await self._apply()
            return self._result


class SettledTransaction:
    """A transaction whose outcome is known up front (e.g. signer declined)."""

    def __init__(self, tx_hash: str, result: SubmissionResult) -> None:
        self.tx_hash = tx_hash
        self._result = result

    async def wait(self) -> SubmissionResult:
        return self._result


@dataclass
class _StoredRecord:
    fields: RecordFields


class InMemoryLedger:
    """
    Shared record table with proof-checked writes.

    Args:
        backend: Proof checker for input and decryption proofs
        contract_address: Address the ciphertexts must be bound to
        confirmation_delay: Seconds a transaction takes to settle
        clock: Source of block timestamps
    """

    def __init__(
        self,
        backend: LocalFheBackend,
        contract_address: str,
        confirmation_delay: float = 0.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.backend = backend
        self.contract_address = contract_address
        self.confirmation_delay = confirmation_delay
        self.available = True
        self._clock = clock
        self._records: dict[str, _StoredRecord] = {}
        self._lock = asyncio.Lock()
        self._tx_counter = itertools.count(1)

    def client(self, signer: str, approve: SignerApproval | None = None) -> InMemoryLedgerClient:
        """Return a client that signs as `signer`."""
        return InMemoryLedgerClient(self, signer, approve or _always_approve)

    def next_tx_hash(self) -> str:
        return f"0x{next(self._tx_counter):064x}"

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def record_ids(self) -> list[str]:
        return list(self._records)

    def fields(self, record_id: str) -> RecordFields:
        stored = self._records.get(record_id)
        if stored is None:
            raise RecordNotFoundError(f"No investment record {record_id!r}")
        return stored.fields

    # -------------------------------------------------------------------------
    # Writes (applied on settlement)
    # -------------------------------------------------------------------------

    async def apply_create(
        self,
        signer: str,
        record_id: str,
        name: str,
        handle: CiphertextHandle,
        proof: bytes,
        risk_level: int,
        public_signal: int,
        description: str,
    ) -> SubmissionResult:
        async with self._lock:
            if record_id in self._records:
                logger.warning("ledger_create_reverted", record_id=record_id, reason="duplicate id")
                return SubmissionResult.FAILED
            if not self.backend.verify_input_proof(handle, proof, self.contract_address, signer):
                logger.warning("ledger_create_reverted", record_id=record_id, reason="invalid input proof")
                return SubmissionResult.FAILED
            self._records[record_id] = _StoredRecord(
                fields=RecordFields(
                    id=record_id,
                    name=name,
                    description=description,
                    creator=signer,
                    created_at=int(self._clock()),
                    risk_level=risk_level,
                    public_signal=public_signal,
                    encrypted_amount_handle=handle,
                )
            )
            logger.info("ledger_record_created", record_id=record_id, creator=signer)
            return SubmissionResult.ACCEPTED

    async def apply_verification(
        self,
        record_id: str,
        clear_values_encoded: bytes,
        proof: bytes,
    ) -> SubmissionResult:
        async with self._lock:
            stored = self._records.get(record_id)
            if stored is None:
                logger.warning("ledger_verify_reverted", record_id=record_id, reason="unknown record")
                return SubmissionResult.FAILED
            if stored.fields.is_verified:
                logger.warning("ledger_verify_reverted", record_id=record_id, reason="already verified")
                return SubmissionResult.FAILED
            handles = [stored.fields.encrypted_amount_handle]
            if not self.backend.verify_decryption_proof(handles, clear_values_encoded, proof):
                logger.warning("ledger_verify_reverted", record_id=record_id, reason="invalid decryption proof")
                return SubmissionResult.FAILED
            try:
                values = decode_clear_values(clear_values_encoded)
            except ValueError:
                logger.warning("ledger_verify_reverted", record_id=record_id, reason="malformed clear values")
                return SubmissionResult.FAILED
            if len(values) != 1:
                logger.warning("ledger_verify_reverted", record_id=record_id, reason="value count mismatch")
                return SubmissionResult.FAILED
            stored.fields = replace(stored.fields, is_verified=True, clear_amount=values[0])
            logger.info("ledger_record_verified", record_id=record_id)
            return SubmissionResult.ACCEPTED


class InMemoryLedgerClient:
    """LedgerRecordStore view of an InMemoryLedger, signing as one wallet."""

    def __init__(self, ledger: InMemoryLedger, signer: str, approve: SignerApproval) -> None:
        self._ledger = ledger
        self.signer = signer
        self._approve = approve

    async def list_record_ids(self) -> list[str]:
        return self._ledger.record_ids()

    async def get_record(self, record_id: str) -> RecordFields:
        return self._ledger.fields(record_id)

    async def get_encrypted_amount_handle(self, record_id: str) -> CiphertextHandle:
        return self._ledger.fields(record_id).encrypted_amount_handle

    async def is_service_available(self) -> bool:
        return self._ledger.available

    async def create_record(
        self,
        record_id: str,
        name: str,
        handle: CiphertextHandle,
        proof: bytes,
        risk_level: int,
        public_signal: int,
        description: str,
    ) -> PendingTransaction | SettledTransaction:
        tx_hash = self._ledger.next_tx_hash()
        if not self._approve("create_record"):
            return SettledTransaction(tx_hash, SubmissionResult.DECLINED)
        return PendingTransaction(
            tx_hash,
            lambda: self._ledger.apply_create(
                self.signer, record_id, name, handle, proof, risk_level, public_signal, description
            ),
            delay=self._ledger.confirmation_delay,
        )

    async def submit_verification_proof(
        self,
        record_id: str,
        clear_values_encoded: bytes,
        proof: bytes,
    ) -> PendingTransaction | SettledTransaction:
        tx_hash = self._ledger.next_tx_hash()
        if not self._approve("verify"):
            return SettledTransaction(tx_hash, SubmissionResult.DECLINED)
        return PendingTransaction(
            tx_hash,
            lambda: self._ledger.apply_verification(record_id, clear_values_encoded, proof),
            delay=self._ledger.confirmation_delay,
        )
