"""
Pydantic Schemas for the Confidential Investment Club REST API.

Defines response schemas and the response envelope used by every endpoint:
    {"success": bool, "data": ..., "error": {"code", "message", "details"} | None}
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from src.core.transaction_status import StatusEvent
from src.lib import errors
from src.lib.errors import build_error_response
from src.models.investment import ClubStatistics, InvestmentRecord

# =============================================================================
# Envelope
# =============================================================================


class APIError(BaseModel):
    """Standard API error payload."""

    code: str
    message: str
    details: dict[str, Any] | None = None


class ResponseEnvelope(BaseModel):
    """Envelope wrapping every API response."""

    success: bool
    data: Any = None
    error: APIError | None = None


def success_response(data: Any) -> dict[str, Any]:
    """Wrap `data` in a success envelope."""
    return ResponseEnvelope(success=True, data=data).model_dump()


def error_response(
    code: str,
    message: str | None = None,
    details: dict[str, Any] | None = None,
    lang: str = "en",
) -> dict[str, Any]:
    """Wrap an error code (translated when `message` is omitted) in an envelope."""
    error = APIError(**build_error_response(code, message, details, lang))
    return ResponseEnvelope(success=False, error=error).model_dump(exclude_none=False)


# =============================================================================
# Resource Schemas
# =============================================================================


class InvestmentRecordResponse(BaseModel):
    """One investment record. `clear_amount` is present only once verified."""

    id: str
    name: str
    description: str
    creator: str
    created_at: int
    risk_level: int
    public_signal: int
    encrypted_amount_handle: str
    is_verified: bool
    clear_amount: int | None = None

    @classmethod
    def from_record(cls, record: InvestmentRecord) -> InvestmentRecordResponse:
        return cls(**record.to_dict())


class ClubStatisticsResponse(BaseModel):
    """Club-wide statistics."""

    total_proposals: int
    verified_proposals: int
    total_investment: int
    active_members: int
    avg_public_signal: float

    @classmethod
    def from_statistics(cls, statistics: ClubStatistics) -> ClubStatisticsResponse:
        return cls(**statistics.to_dict())


class StatusEventResponse(BaseModel):
    """One transaction status change."""

    operation: str
    status: str
    message: str
    phase: str | None = None
    record_id: str | None = None
    error_code: str | None = None
    clear_value: int | None = None
    timestamp: float

    @classmethod
    def from_event(cls, event: StatusEvent) -> StatusEventResponse:
        return cls(**event.to_dict())


class NotificationResponse(BaseModel):
    """The transient notification currently shown to the session."""

    visible: bool
    status: str
    message: str


# =============================================================================
# HTTP Status Mapping
# =============================================================================

_HTTP_STATUS_BY_CODE: dict[str, int] = {
    errors.VALIDATION_ERROR: 422,
    errors.NOT_CONNECTED: 401,
    errors.TRANSACTION_REJECTED: 403,
    errors.NOT_FOUND: 404,
    errors.CONFLICT: 409,
    errors.ENCRYPTION_FAILED: 502,
    errors.CREATION_FAILED: 502,
    errors.VERIFICATION_FAILED: 502,
    errors.DECRYPTION_FAILED: 502,
    errors.SERVICE_UNAVAILABLE: 503,
}


def status_code_for(code: str | None) -> int:
    """HTTP status for an error code (500 for unknown or internal codes)."""
    return _HTTP_STATUS_BY_CODE.get(code or errors.INTERNAL_ERROR, 500)
