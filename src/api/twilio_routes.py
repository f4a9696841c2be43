"""Twilio Voice webhooks.

This module provides:
- Answer webhook (TwiML) for outbound calls and the inbound-call entry point.
- Recording webhook that transcribes and stores the patient's answer.
- Status callback that records call outcomes and triggers the fallback SMS.
"""

from __future__ import annotations

import logging
from xml.sax.saxutils import escape, quoteattr

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response
from starlette.datastructures import FormData

from api.dependencies import get_orchestrator
from calls.orchestrator import CallOrchestrator
from calls.schemas import AnsweredBy
from speech.voice_script import Record, Say, VoiceScript

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/call", tags=["twilio"])


def render_twiml(script: VoiceScript, *, record_action_url: str) -> str:
    parts = ["<?xml version=\"1.0\" encoding=\"UTF-8\"?>", "<Response>"]
    for step in script.instructions:
        if isinstance(step, Say):
            parts.append(
                f"<Say voice={quoteattr(step.voice)} language={quoteattr(step.language)}>"
                f"{escape(step.text)}</Say>"
            )
        elif isinstance(step, Record):
            parts.append(
                f"<Record timeout=\"{int(step.timeout)}\" maxLength=\"{int(step.max_length)}\""
                f" playBeep=\"{'true' if step.play_beep else 'false'}\""
                f" action={quoteattr(record_action_url)} method=\"POST\" />"
            )
        else:
            raise TypeError(f"Unsupported voice instruction: {step!r}")
    parts.append("</Response>")
    return "".join(parts)


def _twiml_response(script: VoiceScript, orchestrator: CallOrchestrator) -> Response:
    xml = render_twiml(script, record_action_url=orchestrator.callbacks.recording_url)
    return Response(content=xml, media_type="text/xml")


def _form_value(form: FormData, key: str) -> str | None:
    value = str(form.get(key) or "").strip()
    return value or None


def _parse_duration(form: FormData) -> int:
    raw = _form_value(form, "Duration") or _form_value(form, "CallDuration")
    if raw is None:
        return 0
    try:
        return max(0, int(raw))
    except ValueError:
        LOGGER.warning("Ignoring non-numeric call duration %r", raw)
        return 0


def _answered_by(form: FormData) -> AnsweredBy | None:
    # Status callbacks sent before machine detection finishes carry no AnsweredBy.
    raw = _form_value(form, "AnsweredBy")
    return AnsweredBy.parse(raw) if raw is not None else None


@router.post("/voice")
async def call_voice_webhook(
    request: Request,
    orchestrator: CallOrchestrator = Depends(get_orchestrator),
) -> Response:
    form = await request.form()
    answered_by = AnsweredBy.parse(_form_value(form, "AnsweredBy"))
    script = orchestrator.on_answered(_form_value(form, "CallSid"), answered_by)
    return _twiml_response(script, orchestrator)


@router.post("/webhook/recording")
async def call_recording_webhook(
    request: Request,
    orchestrator: CallOrchestrator = Depends(get_orchestrator),
) -> Response:
    form = await request.form()
    script = await orchestrator.on_recording_ready(
        _form_value(form, "CallSid"),
        _form_value(form, "RecordingUrl"),
    )
    return _twiml_response(script, orchestrator)


@router.post("/status", status_code=204)
async def call_status_webhook(
    background_tasks: BackgroundTasks,
    request: Request,
    orchestrator: CallOrchestrator = Depends(get_orchestrator),
) -> Response:
    form = await request.form()
    try:
        await orchestrator.on_status(
            _form_value(form, "CallSid"),
            to=_form_value(form, "To"),
            from_=_form_value(form, "From"),
            status=_form_value(form, "CallStatus"),
            answered_by=_answered_by(form),
            duration=_parse_duration(form),
            defer=background_tasks.add_task,
        )
    except Exception:
        # Twilio does not retry on application errors; always acknowledge.
        LOGGER.exception("Status callback handling failed")
    return Response(status_code=204)


@router.post("/incoming")
async def call_incoming_webhook(
    request: Request,
    orchestrator: CallOrchestrator = Depends(get_orchestrator),
) -> Response:
    form = await request.form()
    script = orchestrator.on_incoming_call(_form_value(form, "From"))
    return _twiml_response(script, orchestrator)
