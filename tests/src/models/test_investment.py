"""
Tests for the investment record model and creation input.

Covers:
- Amount variant: verified flag and clear amount always agree
- Record invariants (id, risk level range)
- with_verified_amount: copy-on-verify, idempotent, conflicting value rejected
- to_dict: clear amount only for verified records
- InvestmentInput parsing and ValidationError translation
"""

from __future__ import annotations

import pytest

from src.lib.exceptions import StateError, ValidationError
from src.models.investment import (
    ClubStatistics,
    InvestmentInput,
    InvestmentRecord,
    UnverifiedAmount,
    VerifiedAmount,
    validate_investment_input,
)


def _record(**overrides) -> InvestmentRecord:
    values = {
        "id": "investment-1",
        "name": "Solar farm",
        "description": "Community solar",
        "creator": "0xabc",
        "created_at": 1_700_000_000,
        "risk_level": 7,
        "public_signal": 0,
        "amount": UnverifiedAmount("0xhandle"),
    }
    values.update(overrides)
    return InvestmentRecord(**values)


class TestInvestmentRecord:
    """Record invariants and the amount variant."""

    def test_unverified_record_has_no_clear_amount(self) -> None:
        record = _record()
        assert record.is_verified is False
        assert record.clear_amount is None
        assert record.encrypted_amount_handle == "0xhandle"

    def test_verified_record_exposes_clear_amount(self) -> None:
        record = _record(amount=VerifiedAmount("0xhandle", 1000))
        assert record.is_verified is True
        assert record.clear_amount == 1000

    def test_empty_id_rejected(self) -> None:
        with pytest.raises(StateError):
            _record(id="")

    @pytest.mark.parametrize("risk", [0, 11, -3])
    def test_risk_out_of_range_rejected(self, risk: int) -> None:
        with pytest.raises(StateError):
            _record(risk_level=risk)

    @pytest.mark.parametrize("risk", [1, 10])
    def test_risk_bounds_accepted(self, risk: int) -> None:
        assert _record(risk_level=risk).risk_level == risk

    def test_negative_verified_amount_rejected(self) -> None:
        with pytest.raises(StateError):
            VerifiedAmount("0xhandle", -1)

    def test_record_is_immutable(self) -> None:
        record = _record()
        with pytest.raises(AttributeError):
            record.name = "changed"  # type: ignore[misc]


class TestWithVerifiedAmount:
    """Copy-on-verify semantics."""

    def test_returns_new_verified_copy(self) -> None:
        record = _record()
        verified = record.with_verified_amount(1000)
        assert verified is not record
        assert verified.is_verified
        assert verified.clear_amount == 1000
        assert verified.encrypted_amount_handle == record.encrypted_amount_handle
        assert record.is_verified is False

    def test_same_value_is_noop(self) -> None:
        verified = _record().with_verified_amount(1000)
        assert verified.with_verified_amount(1000) is verified

    def test_different_value_rejected(self) -> None:
        verified = _record().with_verified_amount(1000)
        with pytest.raises(StateError):
            verified.with_verified_amount(999)


class TestToDict:
    """JSON serialization."""

    def test_unverified_omits_clear_amount(self) -> None:
        data = _record().to_dict()
        assert data["is_verified"] is False
        assert "clear_amount" not in data
        assert data["encrypted_amount_handle"] == "0xhandle"

    def test_verified_includes_clear_amount(self) -> None:
        data = _record(amount=VerifiedAmount("0xhandle", 42)).to_dict()
        assert data["is_verified"] is True
        assert data["clear_amount"] == 42

    def test_statistics_to_dict(self) -> None:
        assert ClubStatistics().to_dict() == {
            "total_proposals": 0,
            "verified_proposals": 0,
            "total_investment": 0,
            "active_members": 0,
            "avg_public_signal": 0.0,
        }


class TestInvestmentInput:
    """Creation input validation."""

    def test_defaults(self) -> None:
        request = validate_investment_input({"name": "Fund", "amount": "1000"})
        assert request.amount == 1000
        assert request.description == ""
        assert request.risk_level == 5
        assert request.public_signal == 0

    def test_strips_whitespace(self) -> None:
        request = validate_investment_input({"name": "  Fund  ", "amount": " 12 "})
        assert request.name == "Fund"
        assert request.amount == 12

    def test_string_risk_and_signal_parsed(self) -> None:
        request = validate_investment_input(
            {"name": "Fund", "amount": 5, "risk_level": "7", "public_signal": "-2"}
        )
        assert request.risk_level == 7
        assert request.public_signal == -2

    def test_instance_passes_through(self) -> None:
        request = InvestmentInput(name="Fund", amount=1)
        assert validate_investment_input(request) is request

    @pytest.mark.parametrize(
        "data",
        [
            {"name": "", "amount": "10"},
            {"name": "   ", "amount": "10"},
            {"amount": "10"},
            {"name": "Fund"},
            {"name": "Fund", "amount": ""},
            {"name": "Fund", "amount": "-5"},
            {"name": "Fund", "amount": "12.5"},
            {"name": "Fund", "amount": "1e3"},
            {"name": "Fund", "amount": True},
            {"name": "Fund", "amount": -1},
            {"name": "Fund", "amount": "10", "risk_level": 0},
            {"name": "Fund", "amount": "10", "risk_level": "11"},
            {"name": "Fund", "amount": "10", "risk_level": "high"},
        ],
    )
    def test_invalid_input_raises_validation_error(self, data: dict) -> None:
        with pytest.raises(ValidationError):
            validate_investment_input(data)

    def test_error_message_names_the_field(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_investment_input({"name": "Fund", "amount": "abc"})
        assert "amount" in str(exc_info.value)
