"""Call lifecycle orchestration for medication reminder calls.

Twilio webhooks for one call can arrive in any order. Every transition that
writes goes through ``CallRecordRepository.upsert`` keyed by the CallSid and
only carries the fields that webhook knows about. The record created when a
call is placed is insert-only so it never overwrites an earlier callback.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from calls.errors import MissingInputError, NotifierError, StoreError, ValidationError
from calls.schemas import FALLBACK_STATUSES, AnsweredBy, CallRecordUpdate, CallStatus
from db.models import CallRecord
from speech.voice_script import VoiceScript, closing_script, reminder_script, script_for_answer

LOGGER = logging.getLogger(__name__)


class Notifier(Protocol):
    async def place_call(self, *, to: str, from_: str, answer_url: str, status_url: str) -> str: ...

    async def send_sms(self, *, to: str, from_: str, body: str) -> str: ...


class Fetcher(Protocol):
    async def fetch_transcript(self, recording_url: str) -> str: ...


class Repository(Protocol):
    async def upsert(self, call_sid: str, update: CallRecordUpdate) -> CallRecord: ...

    async def create_if_absent(self, call_sid: str, update: CallRecordUpdate) -> None: ...

    async def list_calls(self) -> list[CallRecord]: ...


@dataclass(frozen=True)
class CallbackUrls:
    answer_url: str
    status_url: str
    recording_url: str

    @classmethod
    def from_base_url(cls, base_url: str) -> CallbackUrls:
        base = f"{base_url.rstrip('/')}/api/call"
        return cls(
            answer_url=f"{base}/voice",
            status_url=f"{base}/status",
            recording_url=f"{base}/webhook/recording",
        )


class CallOrchestrator:
    """State machine tying notifier, transcription and storage together."""

    def __init__(
        self,
        *,
        repository: Repository,
        notifier: Notifier,
        fetcher: Fetcher,
        callbacks: CallbackUrls,
        from_number: str,
        fallback_sms_body: str,
        settle_delay: float = 3.0,
        voice: str = "alice",
        language: str = "en-US",
    ) -> None:
        self._repo = repository
        self._notifier = notifier
        self._fetcher = fetcher
        self.callbacks = callbacks
        self._from_number = from_number
        self._fallback_sms_body = fallback_sms_body
        self._settle_delay = settle_delay
        self._voice = voice
        self._language = language
        self._background: set[asyncio.Task[None]] = set()

    async def initiate_call(self, destination: str | None) -> str:
        destination = (destination or "").strip()
        if not destination:
            raise ValidationError("Phone number is required")

        call_sid = await self._notifier.place_call(
            to=destination,
            from_=self._from_number,
            answer_url=self.callbacks.answer_url,
            status_url=self.callbacks.status_url,
        )
        LOGGER.info("Call initiated. SID: %s", call_sid)

        try:
            # Insert-only: a status callback stored first must not be rolled back.
            await self._repo.create_if_absent(
                call_sid,
                CallRecordUpdate(
                    to_number=destination,
                    from_number=self._from_number,
                    status=CallStatus.INITIATED.value,
                ),
            )
        except StoreError:
            # The call is already placed; the status webhook will create the record.
            LOGGER.exception("Could not pre-create record for call %s", call_sid)
        return call_sid

    def on_answered(self, call_sid: str | None, answered_by: AnsweredBy) -> VoiceScript:
        LOGGER.info("Call %s answered by %s", call_sid or "unknown", answered_by.value)
        return script_for_answer(answered_by, voice=self._voice, language=self._language)

    def on_incoming_call(self, origin: str | None) -> VoiceScript:
        LOGGER.info("Incoming call from %s", origin or "unknown")
        return reminder_script(voice=self._voice, language=self._language)

    async def on_recording_ready(self, call_sid: str | None, recording_url: str | None) -> VoiceScript:
        recording_url = (recording_url or "").strip()
        call_sid = (call_sid or "").strip()
        if not recording_url:
            raise MissingInputError("RecordingUrl is required")
        if not call_sid:
            raise MissingInputError("CallSid is required")

        # Twilio may still be finalizing the audio when the callback fires.
        await asyncio.sleep(self._settle_delay)

        transcript = await self._fetcher.fetch_transcript(recording_url)
        LOGGER.info("Transcript received for call %s (%d chars)", call_sid, len(transcript))

        await self._repo.upsert(
            call_sid,
            CallRecordUpdate(recording_url=recording_url, transcript=transcript),
        )
        return closing_script(voice=self._voice, language=self._language)

    async def on_status(
        self,
        call_sid: str | None,
        *,
        to: str | None,
        from_: str | None,
        status: str | None,
        answered_by: AnsweredBy | None,
        duration: int | None,
        defer: Callable[..., Any] | None = None,
    ) -> None:
        call_sid = (call_sid or "").strip()
        status = (status or "").strip().lower() or None
        if not call_sid:
            LOGGER.warning("Status callback without CallSid ignored (status=%s)", status)
            return

        recorded_status = status
        if status == CallStatus.COMPLETED.value and answered_by is not None and answered_by.is_machine:
            recorded_status = CallStatus.VOICEMAIL_LEFT.value

        update = CallRecordUpdate(
            to_number=to or None,
            from_number=from_ or None,
            status=recorded_status,
            answered_by=answered_by.value if answered_by is not None else None,
            duration=duration or 0,
        )
        try:
            await self._repo.upsert(call_sid, update)
        except StoreError:
            LOGGER.exception("Failed to persist status %s for call %s", status, call_sid)

        if status in {fallback.value for fallback in FALLBACK_STATUSES}:
            if to:
                if defer is not None:
                    defer(self._send_fallback_sms, call_sid, to, status)
                else:
                    self._spawn(self._send_fallback_sms(call_sid, to, status))
            else:
                LOGGER.warning("Call %s ended with %s but has no destination for SMS", call_sid, status)

    async def list_calls(self) -> list[CallRecord]:
        return await self._repo.list_calls()

    async def drain(self) -> None:
        """Wait for outstanding fallback SMS tasks."""

        while True:
            pending = [task for task in self._background if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _send_fallback_sms(self, call_sid: str, to: str, status: str) -> None:
        try:
            message_sid = await self._notifier.send_sms(
                to=to,
                from_=self._from_number,
                body=self._fallback_sms_body,
            )
        except NotifierError:
            LOGGER.exception("Fallback SMS for call %s (%s) failed", call_sid, status)
            return
        LOGGER.info("Fallback SMS %s sent for call %s (%s)", message_sid, call_sid, status)
