"""
REST API Routes for the Confidential Investment Club.

All responses use the ResponseEnvelope pattern. The caller's wallet session
is selected by the X-Wallet-Address header (see src/api/dependencies.py).

Endpoints (all under /api/v1 prefix):
- /health - Health check
- /availability - Ask the ledger whether the FHE service is available
- /investments - List records (GET) or create one (POST)
- /investments/{record_id}/verify - Reveal a record's amount with proof
- /statistics - Club-wide statistics
- /status - Transient notification of the session
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from src.api.dependencies import get_controller
from src.api.schemas import (
    ClubStatisticsResponse,
    InvestmentRecordResponse,
    NotificationResponse,
    StatusEventResponse,
    error_response,
    status_code_for,
    success_response,
)
from src.core.transaction_status import StatusEvent, TransactionStatus
from src.lib import errors
from src.lib.exceptions import ServiceUnavailableError, StateError
from src.services.investment_controller import InvestmentLifecycleController

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1")


def _event_payload(event: StatusEvent) -> dict[str, Any]:
    return StatusEventResponse.from_event(event).model_dump(exclude_none=True)


def _failed_event_response(event: StatusEvent, events: list[StatusEvent]) -> JSONResponse:
    code = event.error_code or errors.INTERNAL_ERROR
    return JSONResponse(
        status_code=status_code_for(code),
        content=error_response(
            code,
            event.message,
            details={
                "record_id": event.record_id,
                "reason": str(event.error) if event.error is not None else None,
                "retryable": event.error.retryable if event.error is not None else False,
                "events": [_event_payload(e) for e in events],
            },
        ),
    )


# =============================================================================
# Health & Availability
# =============================================================================


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """
    Health check endpoint.

    Returns only status, no version or internal details.
    """
    return success_response({"status": "ok"})


@router.get("/availability")
async def check_availability(
    controller: InvestmentLifecycleController = Depends(get_controller),
) -> dict[str, Any]:
    """
    Ask the ledger whether the FHE service is available.

    Raises:
        ServiceUnavailableError: The service reports it is not available
    """
    if not await controller.check_service_available():
        raise ServiceUnavailableError("Ledger reports the FHE service unavailable")
    return success_response({"available": True, "message": controller.notifier.current.message})


# =============================================================================
# Investment Records
# =============================================================================


@router.get("/investments")
async def list_investments(
    controller: InvestmentLifecycleController = Depends(get_controller),
) -> dict[str, Any]:
    """
    Reload and list every investment record.

    Returns:
        Envelope with records and the recomputed statistics
    """
    records = await controller.load_all()
    return success_response({
        "investments": [InvestmentRecordResponse.from_record(r).model_dump() for r in records],
        "total": len(records),
        "statistics": ClubStatisticsResponse.from_statistics(controller.statistics).model_dump(),
    })


@router.post("/investments", response_model=None)
async def create_investment(
    data: dict[str, Any] = Body(...),
    controller: InvestmentLifecycleController = Depends(get_controller),
) -> dict[str, Any] | JSONResponse:
    """
    Create an investment record with an encrypted amount.

    The body is validated by the controller (name, amount, optional
    description, risk_level and public_signal); the amount is encrypted
    before it leaves the session.

    Returns:
        Envelope with the new record and every status event of the run

    Raises:
        ValidationError / NotConnectedError / ConflictError before any side effect
    """
    events: list[StatusEvent] = []
    async for event in controller.create_investment(data):
        events.append(event)

    final = events[-1] if events else None
    if final is None:
        raise StateError("Create protocol ended without a terminal event")
    if final.status == TransactionStatus.ERROR:
        return _failed_event_response(final, events)

    record = next((r for r in controller.records if r.id == final.record_id), None)
    return success_response({
        "investment": (
            InvestmentRecordResponse.from_record(record).model_dump() if record is not None else None
        ),
        "record_id": final.record_id,
        "events": [_event_payload(e) for e in events],
    })


@router.post("/investments/{record_id}/verify", response_model=None)
async def verify_investment(
    record_id: str,
    controller: InvestmentLifecycleController = Depends(get_controller),
) -> dict[str, Any] | JSONResponse:
    """
    Reveal a record's amount through a proof-checked verification.

    Verifying an already verified record succeeds without a new proof.

    Returns:
        Envelope with the verified record and its clear amount
    """
    event = await controller.verify_record(record_id)
    if event.status != TransactionStatus.SUCCESS:
        return _failed_event_response(event, [event])

    record = next((r for r in controller.records if r.id == record_id), None)
    return success_response({
        "investment": (
            InvestmentRecordResponse.from_record(record).model_dump() if record is not None else None
        ),
        "clear_amount": event.clear_value,
        "event": _event_payload(event),
    })


# =============================================================================
# Statistics & Status
# =============================================================================


@router.get("/statistics")
async def get_statistics(
    controller: InvestmentLifecycleController = Depends(get_controller),
) -> dict[str, Any]:
    """Club statistics over a freshly loaded record set."""
    await controller.load_all()
    return success_response(
        ClubStatisticsResponse.from_statistics(controller.statistics).model_dump()
    )


@router.get("/status")
async def get_status(
    controller: InvestmentLifecycleController = Depends(get_controller),
) -> dict[str, Any]:
    """Transient notification and in-flight state of the session."""
    current = controller.notifier.current
    return success_response({
        "notification": NotificationResponse(
            visible=current.visible,
            status=current.status.value,
            message=current.message,
        ).model_dump(),
        "create_status": controller.create_status.value,
        "busy": controller.is_busy,
    })
