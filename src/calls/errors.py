"""Domain-specific exceptions for the call workflow.

These exceptions are safe to import from API layers without pulling in provider SDKs.
"""

from __future__ import annotations


class CallWorkflowError(Exception):
    status_code: int = 500
    default_detail: str = "Call workflow error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class ValidationError(CallWorkflowError):
    status_code = 400
    default_detail = "Invalid request."


class MissingInputError(ValidationError):
    default_detail = "Required input is missing."


class NotifierError(CallWorkflowError):
    status_code = 500
    default_detail = "Telephony provider rejected the request."


class TranscriptionError(CallWorkflowError):
    status_code = 500
    default_detail = "Transcription failed."


class StoreError(CallWorkflowError):
    status_code = 500
    default_detail = "Call record storage failed."
