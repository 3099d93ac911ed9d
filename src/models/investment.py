"""
Investment Record Data Models.

Dataclasses, pydantic input schema and statistics container for the
investment lifecycle.

The encrypted amount is modelled as a tagged variant:
- UnverifiedAmount(handle): only the ciphertext handle is known
- VerifiedAmount(handle, clear_value): the ledger accepted a decryption proof

InvestmentRecord exposes `is_verified` and `clear_amount` as properties
derived from that single field, so one can never be observed without the
other.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any, NewType, TypeAlias

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from src.lib.exceptions import StateError, ValidationError

# Opaque reference to a ciphertext stored on the ledger
CiphertextHandle = NewType("CiphertextHandle", str)

MIN_RISK_LEVEL = 1
MAX_RISK_LEVEL = 10
DEFAULT_RISK_LEVEL = 5


# =============================================================================
# Amount Variants
# =============================================================================

@dataclass(frozen=True)
class UnverifiedAmount:
    """Amount known only as a ciphertext handle."""

    handle: CiphertextHandle


@dataclass(frozen=True)
class VerifiedAmount:
    """Amount whose decryption proof was accepted by the ledger."""

    handle: CiphertextHandle
    clear_value: int

    def __post_init__(self) -> None:
        if self.clear_value < 0:
            raise StateError(f"Verified amount cannot be negative: {self.clear_value}")


AmountState: TypeAlias = UnverifiedAmount | VerifiedAmount


# =============================================================================
# Investment Record
# =============================================================================

@dataclass(frozen=True)
class InvestmentRecord:
    """One investment proposal as reported by the ledger.

    Attributes:
        id: Opaque unique identifier assigned at creation
        name: Proposal title
        description: Free-text description
        creator: Submitter identity (wallet address)
        created_at: Creation timestamp, seconds since epoch
        risk_level: Public risk level in [1, 10]
        public_signal: Second public metric, unrelated to the amount
        amount: Encrypted amount, verified or not
    """

    id: str
    name: str
    description: str
    creator: str
    created_at: int
    risk_level: int
    public_signal: int
    amount: AmountState

    def __post_init__(self) -> None:
        if not self.id:
            raise StateError("Investment record id must not be empty")
        if not MIN_RISK_LEVEL <= self.risk_level <= MAX_RISK_LEVEL:
            raise StateError(
                f"Record {self.id} has risk level {self.risk_level} outside "
                f"[{MIN_RISK_LEVEL}, {MAX_RISK_LEVEL}]"
            )

    @property
    def encrypted_amount_handle(self) -> CiphertextHandle:
        return self.amount.handle

    @property
    def is_verified(self) -> bool:
        return isinstance(self.amount, VerifiedAmount)

    @property
    def clear_amount(self) -> int | None:
        """Clear amount, or None while the record is unverified."""
        if isinstance(self.amount, VerifiedAmount):
            return self.amount.clear_value
        return None

    def with_verified_amount(self, clear_value: int) -> InvestmentRecord:
        """Return a copy of this record carrying a verified amount.

        Verification happens exactly once; re-verifying with the same value is
        a no-op, a different value is an invariant breach.

        Raises:
            StateError: If the record is already verified with another value
        """
        if isinstance(self.amount, VerifiedAmount):
            if self.amount.clear_value != clear_value:
                raise StateError(
                    f"Record {self.id} already verified with a different amount"
                )
            return self
        return replace(self, amount=VerifiedAmount(self.amount.handle, clear_value))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "creator": self.creator,
            "created_at": self.created_at,
            "risk_level": self.risk_level,
            "public_signal": self.public_signal,
            "encrypted_amount_handle": self.encrypted_amount_handle,
            "is_verified": self.is_verified,
        }
        if self.is_verified:
            data["clear_amount"] = self.clear_amount
        return data


# =============================================================================
# Club Statistics
# =============================================================================

@dataclass(frozen=True)
class ClubStatistics:
    """Club-wide metrics derived from the current record set."""

    total_proposals: int = 0
    verified_proposals: int = 0
    total_investment: int = 0
    active_members: int = 0
    avg_public_signal: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_proposals": self.total_proposals,
            "verified_proposals": self.verified_proposals,
            "total_investment": self.total_investment,
            "active_members": self.active_members,
            "avg_public_signal": self.avg_public_signal,
        }


# =============================================================================
# Creation Input
# =============================================================================

class InvestmentInput(BaseModel):
    """Validated input for creating an investment proposal.

    `amount` accepts the raw form value (a string of digits) or an int.
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=200)
    amount: int = Field(..., ge=0)
    description: str = Field(default="", max_length=5000)
    risk_level: int = Field(default=DEFAULT_RISK_LEVEL, ge=MIN_RISK_LEVEL, le=MAX_RISK_LEVEL)
    public_signal: int = 0

    @field_validator("amount", mode="before")
    @classmethod
    def parse_amount(cls, value: Any) -> int:
        if isinstance(value, bool):
            raise ValueError("amount must be an integer")
        if isinstance(value, int):
            return value
        if isinstance(value, str):
            text = value.strip()
            if text.isdigit() and text.isascii():
                return int(text)
        raise ValueError("amount must be a non-negative integer")

    @field_validator("risk_level", "public_signal", mode="before")
    @classmethod
    def parse_int_field(cls, value: Any) -> Any:
        if isinstance(value, str):
            text = value.strip()
            try:
                return int(text)
            except ValueError:
                raise ValueError("must be an integer") from None
        return value


def validate_investment_input(data: InvestmentInput | Mapping[str, Any]) -> InvestmentInput:
    """Validate raw proposal fields.

    Raises:
        ValidationError: With a readable summary of every failing field
    """
    if isinstance(data, InvestmentInput):
        return data
    try:
        return InvestmentInput.model_validate(dict(data))
    except PydanticValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'input'}: {err['msg']}"
            for err in exc.errors()
        )
        raise ValidationError(problems) from exc
