"""Provider-agnostic voice scripts spoken to the patient.

A script is an ordered list of ``Say`` / ``Record`` instructions. Rendering it
into TwiML (or any other markup) is left to the transport layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from calls.schemas import AnsweredBy

REMINDER_MESSAGE = (
    "Hello, this is a reminder from your healthcare provider to confirm your "
    "medications for the day. Please confirm if you have taken your Aspirin, "
    "Cardivol, and Metformin today. Please answer after the beep."
)
VOICEMAIL_MESSAGE = (
    "We called to check on your medication but could not reach you. "
    "Please call us back or take your medications if you have not done so."
)
CLOSING_MESSAGE = "Thank you. Your response has been recorded. Goodbye."

RECORD_TIMEOUT_SECONDS = 5
RECORD_MAX_LENGTH_SECONDS = 10


@dataclass(frozen=True)
class Say:
    text: str
    voice: str = "alice"
    language: str = "en-US"


@dataclass(frozen=True)
class Record:
    timeout: int = RECORD_TIMEOUT_SECONDS
    max_length: int = RECORD_MAX_LENGTH_SECONDS
    play_beep: bool = True


Instruction = Union[Say, Record]


@dataclass(frozen=True)
class VoiceScript:
    instructions: tuple[Instruction, ...]

    @property
    def has_record(self) -> bool:
        return any(isinstance(step, Record) for step in self.instructions)


def reminder_script(*, voice: str = "alice", language: str = "en-US") -> VoiceScript:
    """Medication reminder followed by a single recording of the answer."""

    return VoiceScript(
        instructions=(
            Say(REMINDER_MESSAGE, voice=voice, language=language),
            Record(),
        )
    )


def voicemail_script(*, voice: str = "alice", language: str = "en-US") -> VoiceScript:
    return VoiceScript(instructions=(Say(VOICEMAIL_MESSAGE, voice=voice, language=language),))


def closing_script(*, voice: str = "alice", language: str = "en-US") -> VoiceScript:
    return VoiceScript(instructions=(Say(CLOSING_MESSAGE, voice=voice, language=language),))


# Every AnsweredBy member must be listed here; see tests/test_voice_script.py.
_SCRIPT_BY_ANSWER = {
    AnsweredBy.HUMAN: reminder_script,
    AnsweredBy.UNKNOWN: reminder_script,
    AnsweredBy.MACHINE_START: voicemail_script,
    AnsweredBy.MACHINE_END_BEEP: voicemail_script,
    AnsweredBy.MACHINE_END_SILENCE: voicemail_script,
    AnsweredBy.MACHINE_END_OTHER: voicemail_script,
    AnsweredBy.FAX: voicemail_script,
}


def script_for_answer(
    answered_by: AnsweredBy, *, voice: str = "alice", language: str = "en-US"
) -> VoiceScript:
    try:
        builder = _SCRIPT_BY_ANSWER[answered_by]
    except KeyError:
        raise ValueError(f"No voice script defined for AnsweredBy={answered_by!r}") from None
    return builder(voice=voice, language=language)
