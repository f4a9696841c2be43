from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from twilio.base.exceptions import TwilioException

from calls.errors import NotifierError
from config.settings import get_settings

LOGGER = logging.getLogger(__name__)

STATUS_CALLBACK_EVENTS = ["initiated", "ringing", "answered", "completed"]


@dataclass(frozen=True)
class TwilioConfig:
    account_sid: str
    auth_token: str
    from_number: str
    public_base_url: str


def get_twilio_config() -> TwilioConfig:
    settings = get_settings()
    if not settings.twilio_account_sid or not settings.twilio_auth_token:
        raise ValueError("Twilio credentials are not configured")
    if not settings.twilio_from_number:
        raise ValueError("Twilio from-number is not configured")
    if not settings.public_base_url:
        raise ValueError("PUBLIC_BASE_URL is required for Twilio callbacks")

    return TwilioConfig(
        account_sid=settings.twilio_account_sid,
        auth_token=settings.twilio_auth_token,
        from_number=settings.twilio_from_number,
        public_base_url=settings.public_base_url.rstrip("/"),
    )


def build_twilio_client(cfg: TwilioConfig | None = None):
    from twilio.rest import Client

    cfg = cfg or get_twilio_config()
    return Client(cfg.account_sid, cfg.auth_token)


class TwilioNotifier:
    """Places outbound calls and sends SMS through the Twilio REST API.

    The Twilio SDK is synchronous; requests run in a worker thread so the
    event loop keeps serving other webhooks.
    """

    def __init__(self, client) -> None:
        self._client = client

    async def place_call(
        self,
        *,
        to: str,
        from_: str,
        answer_url: str,
        status_url: str,
    ) -> str:
        try:
            call = await asyncio.to_thread(
                self._client.calls.create,
                to=to,
                from_=from_,
                url=answer_url,
                method="POST",
                status_callback=status_url,
                status_callback_method="POST",
                status_callback_event=STATUS_CALLBACK_EVENTS,
                machine_detection="Enable",
            )
        except TwilioException as exc:
            raise NotifierError(f"Twilio rejected call to {to}: {exc}") from exc
        LOGGER.info("Call placed to %s, sid=%s", to, call.sid)
        return str(call.sid)

    async def send_sms(self, *, to: str, from_: str, body: str) -> str:
        try:
            message = await asyncio.to_thread(
                self._client.messages.create,
                to=to,
                from_=from_,
                body=body,
            )
        except TwilioException as exc:
            raise NotifierError(f"Twilio rejected SMS to {to}: {exc}") from exc
        LOGGER.info("SMS sent to %s, sid=%s", to, message.sid)
        return str(message.sid)
