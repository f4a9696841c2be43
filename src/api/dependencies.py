"""Shared FastAPI dependencies.

Separated to avoid circular imports between route modules.
"""

from __future__ import annotations

from functools import lru_cache

from calls.orchestrator import CallbackUrls, CallOrchestrator
from config.settings import get_settings
from db.repository import CallRecordRepository
from integrations.twilio_client import TwilioNotifier, build_twilio_client, get_twilio_config
from speech.transcriber import TranscriptionFetcher


@lru_cache(maxsize=1)
def _orchestrator_factory() -> CallOrchestrator:
    settings = get_settings()
    cfg = get_twilio_config()
    return CallOrchestrator(
        repository=CallRecordRepository(),
        notifier=TwilioNotifier(build_twilio_client(cfg)),
        fetcher=TranscriptionFetcher.from_settings(settings),
        callbacks=CallbackUrls.from_base_url(cfg.public_base_url),
        from_number=cfg.from_number,
        fallback_sms_body=settings.fallback_sms_body,
        settle_delay=settings.recording_settle_seconds,
        voice=settings.twilio_say_voice,
        language=settings.twilio_say_language,
    )


def get_orchestrator() -> CallOrchestrator:
    return _orchestrator_factory()


async def shutdown_orchestrator() -> None:
    if _orchestrator_factory.cache_info().currsize:
        await _orchestrator_factory().drain()
