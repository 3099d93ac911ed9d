"""
Tests for the in-memory ledger used in development and tests.
"""

from __future__ import annotations

import pytest

from src.lib.exceptions import RecordNotFoundError
from src.services.gateways import SubmissionResult, encode_clear_values
from src.services.ledger_memory import InMemoryLedger
from src.services.local_fhe import LocalFheBackend

CONTRACT = "0x00000000000000000000000000000000000000c1"
MEMBER = "0x00000000000000000000000000000000000000aa"


@pytest.fixture()
def fhe() -> LocalFheBackend:
    return LocalFheBackend(key=b"\x05" * 32)


@pytest.fixture()
def memory_ledger(fhe) -> InMemoryLedger:
    return InMemoryLedger(fhe, CONTRACT, clock=lambda: 1_700_000_123.9)


async def _create(ledger: InMemoryLedger, fhe: LocalFheBackend, record_id: str = "r1", amount: int = 1000):
    sealed = fhe.seal(CONTRACT, MEMBER, amount)
    client = ledger.client(MEMBER)
    tx = await client.create_record(record_id, "Fund", sealed.handle, sealed.proof, 7, 0, "desc")
    return sealed, await tx.wait()


class TestCreate:

    @pytest.mark.asyncio
    async def test_write_applied_on_wait(self, memory_ledger, fhe) -> None:
        sealed = fhe.seal(CONTRACT, MEMBER, 1000)
        client = memory_ledger.client(MEMBER)
        tx = await client.create_record("r1", "Fund", sealed.handle, sealed.proof, 7, 0, "desc")

        assert await client.list_record_ids() == []
        assert await tx.wait() == SubmissionResult.ACCEPTED
        assert await tx.wait() == SubmissionResult.ACCEPTED

        fields = await client.get_record("r1")
        assert fields.creator == MEMBER
        assert fields.created_at == 1_700_000_123
        assert fields.risk_level == 7
        assert fields.is_verified is False
        assert fields.clear_amount is None
        assert await client.get_encrypted_amount_handle("r1") == sealed.handle

    @pytest.mark.asyncio
    async def test_duplicate_id_fails(self, memory_ledger, fhe) -> None:
        await _create(memory_ledger, fhe, "r1")
        _, result = await _create(memory_ledger, fhe, "r1")
        assert result == SubmissionResult.FAILED
        assert memory_ledger.record_ids() == ["r1"]

    @pytest.mark.asyncio
    async def test_proof_for_other_submitter_fails(self, memory_ledger, fhe) -> None:
        sealed = fhe.seal(CONTRACT, "0xsomeoneelse", 10)
        tx = await memory_ledger.client(MEMBER).create_record(
            "r1", "Fund", sealed.handle, sealed.proof, 5, 0, ""
        )
        assert await tx.wait() == SubmissionResult.FAILED
        assert memory_ledger.record_ids() == []

    @pytest.mark.asyncio
    async def test_declining_signer(self, memory_ledger, fhe) -> None:
        sealed = fhe.seal(CONTRACT, MEMBER, 10)
        client = memory_ledger.client(MEMBER, approve=lambda action: False)
        tx = await client.create_record("r1", "Fund", sealed.handle, sealed.proof, 5, 0, "")
        assert await tx.wait() == SubmissionResult.DECLINED
        assert memory_ledger.record_ids() == []

    @pytest.mark.asyncio
    async def test_unknown_record(self, memory_ledger) -> None:
        with pytest.raises(RecordNotFoundError):
            await memory_ledger.client(MEMBER).get_record("missing")

    def test_tx_hashes_are_unique(self, memory_ledger) -> None:
        assert memory_ledger.next_tx_hash() != memory_ledger.next_tx_hash()


class TestVerification:

    @pytest.mark.asyncio
    async def test_valid_proof_sets_both_fields(self, memory_ledger, fhe) -> None:
        sealed, _ = await _create(memory_ledger, fhe, amount=1000)
        result = fhe.open([sealed.handle], CONTRACT)
        client = memory_ledger.client(MEMBER)
        tx = await client.submit_verification_proof("r1", result.encoded_clear_values, result.proof)

        assert await tx.wait() == SubmissionResult.ACCEPTED
        fields = await client.get_record("r1")
        assert fields.is_verified is True
        assert fields.clear_amount == 1000

    @pytest.mark.asyncio
    async def test_forged_value_rejected(self, memory_ledger, fhe) -> None:
        sealed, _ = await _create(memory_ledger, fhe, amount=1000)
        result = fhe.open([sealed.handle], CONTRACT)
        tx = await memory_ledger.client(MEMBER).submit_verification_proof(
            "r1", encode_clear_values([5]), result.proof
        )
        assert await tx.wait() == SubmissionResult.FAILED
        assert memory_ledger.fields("r1").is_verified is False

    @pytest.mark.asyncio
    async def test_second_verification_fails(self, memory_ledger, fhe) -> None:
        sealed, _ = await _create(memory_ledger, fhe)
        result = fhe.open([sealed.handle], CONTRACT)
        client = memory_ledger.client(MEMBER)
        first = await client.submit_verification_proof("r1", result.encoded_clear_values, result.proof)
        await first.wait()
        second = await client.submit_verification_proof("r1", result.encoded_clear_values, result.proof)
        assert await second.wait() == SubmissionResult.FAILED
        assert memory_ledger.fields("r1").clear_amount == 1000

    @pytest.mark.asyncio
    async def test_unknown_record_fails(self, memory_ledger) -> None:
        tx = await memory_ledger.client(MEMBER).submit_verification_proof("missing", b"", b"")
        assert await tx.wait() == SubmissionResult.FAILED

    @pytest.mark.asyncio
    async def test_declined_verification(self, memory_ledger, fhe) -> None:
        sealed, _ = await _create(memory_ledger, fhe)
        result = fhe.open([sealed.handle], CONTRACT)
        client = memory_ledger.client(MEMBER, approve=lambda action: action != "verify")
        tx = await client.submit_verification_proof("r1", result.encoded_clear_values, result.proof)
        assert await tx.wait() == SubmissionResult.DECLINED
        assert memory_ledger.fields("r1").is_verified is False


class TestAvailability:

    @pytest.mark.asyncio
    async def test_reports_flag(self, memory_ledger) -> None:
        client = memory_ledger.client(MEMBER)
        assert await client.is_service_available() is True
        memory_ledger.available = False
        assert await client.is_service_available() is False
