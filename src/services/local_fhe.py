"""
Local Encryption Backend for development and tests.

Stands in for the external FHE engine so the lifecycle can run end-to-end
without a chain. It is NOT homomorphic: amounts are sealed with AES-256-GCM
and proofs are HMAC-SHA256 tags the in-memory ledger can check.

Key Features:
- Ciphertexts bound to (target contract, submitter) via GCM associated data
- Opaque 32-byte handles (hex) referencing the stored ciphertext
- Input proofs: tag over handle + binding, checked before a record is stored
- Decryption proofs: tag over handles + encoded clear values, checked before
  a record is marked verified

Usage:
    backend = LocalFheBackend(key=settings.simulation_key)
    gateway = LocalEncryptionGateway(backend)
    verifier = LocalDecryptionVerifier(backend)
"""

from __future__ import annotations

import hashlib
import hmac
import os
from collections.abc import Sequence
from dataclasses import dataclass

import structlog
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from src.lib.exceptions import DecryptionError, EncryptionError
from src.models.investment import CiphertextHandle
from src.services.gateways import DecryptionResult, EncryptedInput, encode_clear_values

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class _SealedValue:
    ciphertext: bytes  # nonce + GCM ciphertext
    binding: bytes  # associated data: contract|submitter


def _binding(target_contract: str, submitter: str) -> bytes:
    return f"{target_contract.lower()}|{submitter.lower()}".encode()


class LocalFheBackend:
    """
    Seals amounts and issues proofs with a single local key.

    Args:
        key: 32-byte master key. A random key is generated when omitted,
            which makes ciphertexts unreadable after a restart.
    """

    KEY_SIZE = 32
    NONCE_SIZE = 12
    AMOUNT_BYTES = 32  # uint256 range
    MAX_AMOUNT = 2 ** (AMOUNT_BYTES * 8) - 1

    def __init__(self, key: bytes | None = None) -> None:
        if key is not None and len(key) != self.KEY_SIZE:
            raise ValueError(f"Local backend key must be {self.KEY_SIZE} bytes")
        master = key or AESGCM.generate_key(bit_length=256)
        self._cipher = AESGCM(self._derive(master, b"club-amount-encryption"))
        self._proof_key = self._derive(master, b"club-proof-signing")
        self._sealed: dict[CiphertextHandle, _SealedValue] = {}

    @classmethod
    def _derive(cls, master: bytes, info: bytes) -> bytes:
        return HKDF(
            algorithm=hashes.SHA256(),
            length=cls.KEY_SIZE,
            salt=None,
            info=info,
        ).derive(master)

    def _tag(self, *parts: bytes) -> bytes:
        mac = hmac.new(self._proof_key, digestmod=hashlib.sha256)
        for part in parts:
            mac.update(len(part).to_bytes(4, "big"))
            mac.update(part)
        return mac.digest()

    # -------------------------------------------------------------------------
    # Encryption side
    # -------------------------------------------------------------------------

    def seal(self, target_contract: str, submitter: str, plaintext: int) -> EncryptedInput:
        """Encrypt `plaintext` and register the ciphertext under a fresh handle.

        Raises:
            EncryptionError: If the value is out of the uint256 range
        """
        if isinstance(plaintext, bool) or not isinstance(plaintext, int):
            raise EncryptionError(f"Only integers can be encrypted, got {type(plaintext).__name__}")
        if not 0 <= plaintext <= self.MAX_AMOUNT:
            raise EncryptionError("Amount is outside the encryptable range")

        binding = _binding(target_contract, submitter)
        nonce = os.urandom(self.NONCE_SIZE)
        ciphertext = nonce + self._cipher.encrypt(
            nonce, plaintext.to_bytes(self.AMOUNT_BYTES, "big"), binding
        )
        handle = CiphertextHandle("0x" + hashlib.sha256(ciphertext).hexdigest())
        self._sealed[handle] = _SealedValue(ciphertext=ciphertext, binding=binding)

        proof = self._tag(b"input", handle.encode(), binding)
        logger.debug("amount_sealed", handle=handle, contract=target_contract)
        return EncryptedInput(handle=handle, proof=proof)

    def verify_input_proof(
        self,
        handle: CiphertextHandle,
        proof: bytes,
        target_contract: str,
        submitter: str,
    ) -> bool:
        """Check that `proof` binds `handle` to this contract and submitter."""
        sealed = self._sealed.get(handle)
        binding = _binding(target_contract, submitter)
        if sealed is None or sealed.binding != binding:
            return False
        return hmac.compare_digest(proof, self._tag(b"input", handle.encode(), binding))

    # -------------------------------------------------------------------------
    # Decryption side
    # -------------------------------------------------------------------------

    def open(self, handles: Sequence[CiphertextHandle], target_contract: str) -> DecryptionResult:
        """Decrypt `handles` and sign the result.

        Raises:
            DecryptionError: Unknown handle, foreign contract, or tampered data
        """
        if not handles:
            raise DecryptionError("No handles to decrypt")

        clear_values: dict[CiphertextHandle, int] = {}
        for handle in handles:
            sealed = self._sealed.get(handle)
            if sealed is None:
                raise DecryptionError(f"Unknown ciphertext handle {handle}")
            if not sealed.binding.startswith(f"{target_contract.lower()}|".encode()):
                raise DecryptionError(f"Handle {handle} belongs to another contract")
            nonce = sealed.ciphertext[:self.NONCE_SIZE]
            try:
                raw = self._cipher.decrypt(nonce, sealed.ciphertext[self.NONCE_SIZE:], sealed.binding)
            except InvalidTag as exc:
                raise DecryptionError(f"Ciphertext for {handle} failed authentication") from exc
            clear_values[handle] = int.from_bytes(raw, "big")

        encoded = encode_clear_values([clear_values[handle] for handle in handles])
        proof = self._tag(b"decryption", *(h.encode() for h in handles), encoded)
        return DecryptionResult(clear_values=clear_values, encoded_clear_values=encoded, proof=proof)

    def verify_decryption_proof(
        self,
        handles: Sequence[CiphertextHandle],
        encoded_clear_values: bytes,
        proof: bytes,
    ) -> bool:
        """Check that `proof` attests `encoded_clear_values` for `handles`."""
        expected = self._tag(b"decryption", *(h.encode() for h in handles), encoded_clear_values)
        return hmac.compare_digest(proof, expected)


class LocalEncryptionGateway:
    """EncryptionGateway backed by LocalFheBackend."""

    def __init__(self, backend: LocalFheBackend) -> None:
        self._backend = backend

    async def encrypt(self, target_contract: str, submitter: str, plaintext: int) -> EncryptedInput:
        return self._backend.seal(target_contract, submitter, plaintext)


class LocalDecryptionVerifier:
    """DecryptionVerifier backed by LocalFheBackend."""

    def __init__(self, backend: LocalFheBackend) -> None:
        self._backend = backend

    async def request_decryption(
        self,
        handles: Sequence[CiphertextHandle],
        target_contract: str,
    ) -> DecryptionResult:
        return self._backend.open(list(handles), target_contract)
