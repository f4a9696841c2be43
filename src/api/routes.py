"""FastAPI routes for the call API."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Body, Depends

from api.dependencies import get_orchestrator
from api.schemas import CallRecordResponse, HealthResponse, InitiateCallRequest, InitiateCallResponse
from api.twilio_routes import router as twilio_router
from calls.orchestrator import CallOrchestrator
from db.models import CallRecord

LOGGER = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse()


@router.post("/call", response_model=InitiateCallResponse)
async def trigger_call(
    payload: InitiateCallRequest | None = Body(default=None),
    orchestrator: CallOrchestrator = Depends(get_orchestrator),
) -> InitiateCallResponse:
    phone_number = payload.phone_number if payload else None
    call_sid = await orchestrator.initiate_call(phone_number)
    return InitiateCallResponse(sid=call_sid)


@router.get("/call/logs", response_model=list[CallRecordResponse])
async def call_logs(
    orchestrator: CallOrchestrator = Depends(get_orchestrator),
) -> list[CallRecordResponse]:
    records = await orchestrator.list_calls()
    return [_to_response(record) for record in records]


def _to_response(record: CallRecord) -> CallRecordResponse:
    return CallRecordResponse(
        call_sid=record.call_sid,
        to_number=record.to_number,
        from_number=record.from_number,
        status=record.status,
        answered_by=record.answered_by,
        duration=record.duration or 0,
        recording_url=record.recording_url,
        transcript=record.transcript,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


router.include_router(twilio_router)
