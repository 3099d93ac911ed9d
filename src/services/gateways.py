"""
Collaborator Contracts for the Investment Lifecycle.

The lifecycle controller depends on three external capabilities. This module
defines their interfaces as Protocols plus the values exchanged with them.
Nothing here is wire-level: the FHE engine and the ledger client own their
protocols, adapters translate to these shapes.

- EncryptionGateway: plaintext int -> ciphertext handle + input proof
- LedgerRecordStore: append-only record store with proof-checked verification
- DecryptionVerifier: ciphertext handles -> clear values + decryption proof
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol

from src.models.investment import CiphertextHandle

# Clear values are encoded as consecutive 32-byte big-endian unsigned words
WORD_SIZE = 32


class SubmissionResult(StrEnum):
    """Outcome of a ledger transaction once it settles."""

    ACCEPTED = "accepted"
    DECLINED = "declined"  # the signer refused to sign
    FAILED = "failed"  # reverted, dropped, node error


@dataclass(frozen=True)
class EncryptedInput:
    """Ciphertext handle plus the proof binding it to contract and submitter."""

    handle: CiphertextHandle
    proof: bytes


@dataclass(frozen=True)
class DecryptionResult:
    """Clear values for a set of handles plus the proof the ledger checks."""

    clear_values: Mapping[CiphertextHandle, int]
    encoded_clear_values: bytes
    proof: bytes


@dataclass(frozen=True)
class RecordFields:
    """Fields of one record as the ledger reports them.

    `clear_amount` is meaningful only when `is_verified` is set.
    """

    id: str
    name: str
    description: str
    creator: str
    created_at: int
    risk_level: int
    public_signal: int
    encrypted_amount_handle: CiphertextHandle
    is_verified: bool = False
    clear_amount: int | None = field(default=None)


def encode_clear_values(values: Sequence[int]) -> bytes:
    """Encode clear values as 32-byte big-endian words (uint256 ABI layout)."""
    encoded = bytearray()
    for value in values:
        if value < 0:
            raise ValueError(f"Clear values must be unsigned, got {value}")
        encoded += value.to_bytes(WORD_SIZE, "big")
    return bytes(encoded)


def decode_clear_values(data: bytes) -> list[int]:
    """Inverse of encode_clear_values."""
    if len(data) % WORD_SIZE:
        raise ValueError(f"Encoded clear values must be a multiple of {WORD_SIZE} bytes")
    return [
        int.from_bytes(data[offset:offset + WORD_SIZE], "big")
        for offset in range(0, len(data), WORD_SIZE)
    ]


# =============================================================================
# Protocols
# =============================================================================

class LedgerTransaction(Protocol):
    """A submitted ledger write awaiting settlement."""

    tx_hash: str

    async def wait(self) -> SubmissionResult:
        """Block until the transaction settles."""
        ...


class EncryptionGateway(Protocol):
    """Client-side encryption of plaintext amounts."""

    async def encrypt(
        self,
        target_contract: str,
        submitter: str,
        plaintext: int,
    ) -> EncryptedInput:
        """Encrypt `plaintext` for `target_contract` on behalf of `submitter`.

        Raises:
            EncryptionError: If the engine cannot produce a ciphertext
        """
        ...


class LedgerRecordStore(Protocol):
    """Read/write access to investment records on the ledger."""

    async def list_record_ids(self) -> list[str]:
        ...

    async def get_record(self, record_id: str) -> RecordFields:
        """Raises RecordNotFoundError for unknown ids."""
        ...

    async def create_record(
        self,
        record_id: str,
        name: str,
        handle: CiphertextHandle,
        proof: bytes,
        risk_level: int,
        public_signal: int,
        description: str,
    ) -> LedgerTransaction:
        ...

    async def get_encrypted_amount_handle(self, record_id: str) -> CiphertextHandle:
        ...

    async def submit_verification_proof(
        self,
        record_id: str,
        clear_values_encoded: bytes,
        proof: bytes,
    ) -> LedgerTransaction:
        ...

    async def is_service_available(self) -> bool:
        ...


class DecryptionVerifier(Protocol):
    """Off-chain decryption producing a proof the ledger can check."""

    async def request_decryption(
        self,
        handles: Sequence[CiphertextHandle],
        target_contract: str,
    ) -> DecryptionResult:
        """Decrypt `handles`.

        Raises:
            DecryptionError: If any handle cannot be decrypted
        """
        ...
