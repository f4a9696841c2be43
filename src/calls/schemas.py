"""Call lifecycle enumerations and record update payloads."""

from __future__ import annotations

import logging
from enum import Enum

from pydantic import BaseModel

LOGGER = logging.getLogger(__name__)


class CallStatus(str, Enum):
    QUEUED = "queued"
    INITIATED = "initiated"
    RINGING = "ringing"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    BUSY = "busy"
    NO_ANSWER = "no-answer"
    FAILED = "failed"
    CANCELED = "canceled"
    # Completed call that reached an answering machine.
    VOICEMAIL_LEFT = "voicemail-left"


FALLBACK_STATUSES = frozenset({CallStatus.NO_ANSWER, CallStatus.BUSY, CallStatus.FAILED})


class AnsweredBy(str, Enum):
    """Twilio answering machine detection classifications."""

    HUMAN = "human"
    MACHINE_START = "machine_start"
    MACHINE_END_BEEP = "machine_end_beep"
    MACHINE_END_SILENCE = "machine_end_silence"
    MACHINE_END_OTHER = "machine_end_other"
    FAX = "fax"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | None) -> AnsweredBy:
        raw = (value or "").strip().lower()
        if not raw:
            return cls.UNKNOWN
        try:
            return cls(raw)
        except ValueError:
            LOGGER.warning("Unrecognised AnsweredBy value %r, treating as unknown", raw)
            return cls.UNKNOWN

    @property
    def is_machine(self) -> bool:
        return self in _MACHINE_CLASSIFICATIONS


_MACHINE_CLASSIFICATIONS = frozenset(
    {
        AnsweredBy.MACHINE_START,
        AnsweredBy.MACHINE_END_BEEP,
        AnsweredBy.MACHINE_END_SILENCE,
        AnsweredBy.MACHINE_END_OTHER,
        AnsweredBy.FAX,
    }
)


class CallRecordUpdate(BaseModel):
    """Fields merged into a call record. ``None`` means "leave unchanged"."""

    to_number: str | None = None
    from_number: str | None = None
    status: str | None = None
    answered_by: str | None = None
    duration: int | None = None
    recording_url: str | None = None
    transcript: str | None = None

    def changed_fields(self) -> dict[str, object]:
        return self.model_dump(exclude_none=True)
