"""API-facing Pydantic models."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


class InitiateCallRequest(BaseModel):
    phone_number: str | None = Field(
        default=None,
        alias="phoneNumber",
        description="E.164 phone number, e.g. +15551234567",
    )

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("phone_number", mode="before")
    @classmethod
    def coerce_phone_number(cls, value: object) -> object:
        # JSON clients sometimes send the number unquoted.
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(int(value))
        return value


class InitiateCallResponse(BaseModel):
    message: str = "Call initiated"
    sid: str


class CallRecordResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    call_sid: str = Field(alias="callSid")
    to_number: str | None = Field(default=None, alias="to")
    from_number: str | None = Field(default=None, alias="from")
    status: str | None = None
    answered_by: str | None = Field(default=None, alias="answeredBy")
    duration: int = 0
    recording_url: str | None = Field(default=None, alias="recordingUrl")
    transcript: str | None = Field(default=None, alias="transcription")
    created_at: datetime = Field(alias="timestamp")
    updated_at: datetime = Field(alias="updatedAt")


class HealthResponse(BaseModel):
    status: str = "ok"
