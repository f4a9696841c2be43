"""Transcription of Twilio call recordings through the Deepgram pre-recorded API."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import httpx

from calls.errors import TranscriptionError
from config.settings import Settings, get_settings

LOGGER = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff applied to the whole download + transcribe pipeline."""

    max_retries: int = 3
    base_delay: float = 0.5
    multiplier: float = 2.0
    max_delay: float = 8.0

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, attempt: int) -> float:
        """Delay after the zero-based ``attempt`` failed."""

        return min(self.base_delay * (self.multiplier**attempt), self.max_delay)

    @staticmethod
    def is_transient(exc: BaseException) -> bool:
        if isinstance(exc, httpx.HTTPStatusError):
            return exc.response.status_code >= 500
        if isinstance(exc, httpx.UnsupportedProtocol):
            return False
        # ConnectError, ReadTimeout, ... all derive from TransportError.
        return isinstance(exc, httpx.TransportError)

    @classmethod
    def from_settings(cls, settings: Settings) -> RetryPolicy:
        return cls(
            max_retries=settings.transcription_max_retries,
            base_delay=settings.transcription_backoff_seconds,
            max_delay=settings.transcription_backoff_max_seconds,
        )


class TranscriptionFetcher:
    """Downloads a recording and returns its primary transcript."""

    def __init__(
        self,
        *,
        account_sid: str,
        auth_token: str,
        deepgram_api_key: str,
        deepgram_base_url: str = "https://api.deepgram.com",
        model: str = "nova-2",
        recording_format: str = "mp3",
        timeout: float = 30.0,
        retry_policy: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._auth = (account_sid, auth_token)
        self._deepgram_api_key = deepgram_api_key
        self._listen_url = f"{deepgram_base_url.rstrip('/')}/v1/listen"
        self._model = model
        self._recording_format = recording_format
        self._timeout = timeout
        self._retry = retry_policy or RetryPolicy()
        self._transport = transport
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> TranscriptionFetcher:
        settings = settings or get_settings()
        if not settings.deepgram_api_key:
            raise ValueError("Deepgram API key is not configured")
        if not settings.twilio_account_sid or not settings.twilio_auth_token:
            raise ValueError("Twilio credentials are not configured")
        return cls(
            account_sid=settings.twilio_account_sid,
            auth_token=settings.twilio_auth_token,
            deepgram_api_key=settings.deepgram_api_key,
            deepgram_base_url=settings.deepgram_base_url,
            model=settings.deepgram_model,
            recording_format=settings.twilio_recording_format,
            timeout=settings.http_timeout_seconds,
            retry_policy=RetryPolicy.from_settings(settings),
        )

    async def fetch_transcript(self, recording_url: str) -> str:
        last_error: Exception | None = None
        for attempt in range(self._retry.max_attempts):
            try:
                return await self._fetch_once(recording_url)
            except (httpx.HTTPError, TranscriptionError) as exc:
                if not self._retry.is_transient(exc):
                    if isinstance(exc, TranscriptionError):
                        raise
                    raise TranscriptionError(f"Transcription request rejected: {exc}") from exc
                last_error = exc

            if attempt + 1 < self._retry.max_attempts:
                delay = self._retry.delay_for(attempt)
                LOGGER.warning(
                    "Transient transcription failure (attempt %d/%d), retrying in %.2fs: %s",
                    attempt + 1,
                    self._retry.max_attempts,
                    delay,
                    last_error,
                )
                await self._sleep(delay)

        raise TranscriptionError(
            f"Transcription failed after {self._retry.max_attempts} attempts: {last_error}"
        ) from last_error

    async def _fetch_once(self, recording_url: str) -> str:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            download = await client.get(
                self._media_url(recording_url),
                auth=self._auth,
                follow_redirects=True,
            )
            download.raise_for_status()

            content_type = download.headers.get("content-type", "audio/mpeg")
            response = await client.post(
                self._listen_url,
                params={"model": self._model, "smart_format": "true"},
                headers={
                    "Authorization": f"Token {self._deepgram_api_key}",
                    "Content-Type": content_type,
                },
                content=download.content,
            )
            response.raise_for_status()

        return self._extract_transcript(response)

    def _media_url(self, recording_url: str) -> str:
        # Twilio serves the bare recording URL as WAV; an extension selects the format.
        tail = recording_url.rsplit("/", 1)[-1]
        if "." in tail:
            return recording_url
        return f"{recording_url}.{self._recording_format}"

    @staticmethod
    def _extract_transcript(response: httpx.Response) -> str:
        try:
            payload = response.json()
            transcript = payload["results"]["channels"][0]["alternatives"][0]["transcript"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise TranscriptionError("Malformed transcription response") from exc
        if not isinstance(transcript, str):
            raise TranscriptionError("Malformed transcription response")
        return transcript.strip()
