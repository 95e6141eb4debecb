"""
ElevenLabs Text-to-Speech Client.

Converts text to MP3 bytes through the ElevenLabs REST API:

    POST {base_url}/v1/text-to-speech/{voice_id}?output_format=mp3_44100_128
    xi-api-key: <caller's key>
    {"text": ..., "model_id": "eleven_multilingual_v2", "voice_settings": {"speed": 1.0}}

Retry Policy:
    Only transport failures (connect errors, timeouts, dropped connections)
    are retried, up to max_attempts with exponential backoff between
    attempts (2s, 4s with the defaults). An HTTP response of any status is
    final: a non-200 is reported immediately with its status and body.

Timeouts:
    httpx bounds each phase (connect, every read, write) separately. On top
    of that each attempt has a total deadline of timeout_s, checked while
    the body streams in, so a provider trickling bytes cannot hold a worker
    indefinitely. Exceeding it raises httpx.ReadTimeout and is retried like
    any other transport failure.

Voice Catalog:
    VOICES is a fixed, ordered list. Callers pick a voice by index
    ("voiceIx" on the wire), so the order must never change; retire a voice
    by marking it disabled instead of removing it.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import httpx

from tts_relay.core.config import TTSClientConfig
from tts_relay.core.logging import get_logger, verbose, warn
from tts_relay.core.metrics import metrics


_LOG = get_logger("tts-relay.tts")


@dataclass(frozen=True)
class VoiceModel:
    """One entry of the voice catalog."""
    voice_id: str
    description: str
    disabled: bool = False

    @property
    def name(self) -> str:
        return self.description.split(":", 1)[0]


VOICES: List[VoiceModel] = [
    VoiceModel("kdmDKE6EkgrWrrykO9Qt", "Alexandra: A super realistic, young female voice that likes to chat"),
    VoiceModel("L0Dsvb3SLTyegXwtm47J", "Archer: Grounded and friendly young British male with charm"),
    VoiceModel("g6xIsTj2HwM6VR4iXFCw", "Jessica Anne Bogart: Empathetic and expressive, great for wellness coaches"),
    VoiceModel("OYTbf65OHHFELVut7v2H", "Hope: Bright and uplifting, perfect for positive interactions"),
    VoiceModel("dj3G1R1ilKoFKhBnWOzG", "Eryn: Friendly and relatable, ideal for casual interactions"),
    VoiceModel("HDA9tsk27wYi3uq0fPcK", "Stuart: Professional & friendly Aussie, ideal for technical assistance"),
    VoiceModel("1SM7GgM6IMuvQlz2BwM3", "Mark: Relaxed and laid back, suitable for non chalant chats"),
    VoiceModel("PT4nqlKZfc06VW1BuClj", "Angela: Raw and relatable, great listener and down to earth"),
    VoiceModel("vBKc2FfBKJfcZNyEt1n6", "Finn: Tenor pitched, excellent for podcasts and light chats"),
    VoiceModel("56AoDkrOh6qfVPDXZ7Pt", "Cassidy: Engaging and energetic, good for entertainment contexts"),
    VoiceModel("NOpBlnGInO9m6vDvFkFC", "Grandpa Spuds Oxley: Distinctive character voice for unique agents"),
]


def is_valid_voice_index(voice_index: int) -> bool:
    """True when voice_index names an enabled catalog entry."""
    return 0 <= voice_index < len(VOICES) and not VOICES[voice_index].disabled


def get_voice(voice_index: int) -> VoiceModel:
    """
    Resolve a catalog index.

    Raises:
        ValueError: If the index is out of range or the voice is disabled.
    """
    if not is_valid_voice_index(voice_index):
        raise ValueError(f"voice index {voice_index} is out of range (0-{len(VOICES) - 1})")
    return VOICES[voice_index]


def voice_catalog() -> List[Dict[str, Any]]:
    """Catalog as JSON-ready dicts (used by GET /voices and the CLI)."""
    return [
        {
            "index": ix,
            "voiceId": voice.voice_id,
            "name": voice.name,
            "description": voice.description,
            "disabled": voice.disabled,
        }
        for ix, voice in enumerate(VOICES)
    ]


class TTSClientError(Exception):
    """
    Raised when text-to-speech conversion fails.

    Attributes:
        message: Failure description, recorded verbatim on the job.
        status_code: HTTP status of a non-200 response, else None.
        body: Response body of a non-200 response, else None.
        attempts: Number of HTTP attempts made.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        attempts: int = 1,
    ):
        self.message = message
        self.status_code = status_code
        self.body = body
        self.attempts = attempts
        super().__init__(message)


class TTSClient:
    """
    Synchronous ElevenLabs client.

    One instance is shared by all job workers; httpx.Client is thread-safe
    and pools connections across jobs.

    Example:
        >>> client = TTSClient(TTSClientConfig())
        >>> audio = client.synthesize("Hello there", api_key="sk_...", voice_index=3)
    """

    def __init__(
        self,
        config: TTSClientConfig,
        http_client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._config = config
        self._sleep = sleep
        self._owns_client = http_client is None
        self._http = http_client or httpx.Client(
            timeout=httpx.Timeout(config.timeout_s, connect=config.connect_timeout_s),
        )

    @property
    def config(self) -> TTSClientConfig:
        return self._config

    def close(self) -> None:
        if self._owns_client:
            self._http.close()

    def build_url(self, voice: VoiceModel) -> str:
        return f"{self._config.base_url}/v1/text-to-speech/{voice.voice_id}"

    def build_payload(self, text: str) -> Dict[str, Any]:
        return {
            "text": text,
            "model_id": self._config.model_id,
            "voice_settings": {"speed": self._config.speed},
        }

    def backoff_delay(self, attempt: int) -> float:
        """Delay after the given failed attempt (1-based)."""
        return self._config.backoff_base_s * (2 ** (attempt - 1))

    def synthesize(self, text: str, api_key: str, voice_index: int) -> bytes:
        """
        Convert text to audio bytes.

        Args:
            text: Text to speak.
            api_key: Caller's ElevenLabs API key, sent as xi-api-key.
            voice_index: Index into VOICES.

        Returns:
            Audio bytes in the configured output format.

        Raises:
            ValueError: If voice_index is not a valid catalog index.
            TTSClientError: On a non-200 response or exhausted retries.
        """
        voice = get_voice(voice_index)
        url = self.build_url(voice)
        params = {"output_format": self._config.output_format}
        headers = {"xi-api-key": api_key, "Content-Type": "application/json"}
        payload = self.build_payload(text)
        max_attempts = self._config.max_attempts

        last_error: Optional[httpx.TransportError] = None
        for attempt in range(1, max_attempts + 1):
            t0 = time.perf_counter()
            try:
                with self._http.stream("POST", url, params=params, headers=headers, json=payload) as response:
                    status_code = response.status_code
                    audio = self._read_body(response, deadline=t0 + self._config.timeout_s)
            except httpx.TransportError as e:
                metrics.record_tts_attempt("transport_error", time.perf_counter() - t0)
                last_error = e
                if attempt < max_attempts:
                    delay = self.backoff_delay(attempt)
                    warn(
                        _LOG, "tts_retry",
                        attempt=attempt, max_attempts=max_attempts,
                        delay_s=delay, error=_describe(e),
                    )
                    self._sleep(delay)
                continue

            elapsed = time.perf_counter() - t0
            if status_code != 200:
                metrics.record_tts_attempt("http_error", elapsed)
                body = audio.decode("utf-8", errors="replace")
                raise TTSClientError(
                    f"API request failed with status {status_code}: {body}",
                    status_code=status_code,
                    body=body,
                    attempts=attempt,
                )

            metrics.record_tts_attempt("ok", elapsed)
            verbose(
                _LOG, "tts_ok",
                seconds=round(elapsed, 3), voice=voice.name, attempt=attempt, bytes=len(audio),
            )
            return audio

        raise TTSClientError(
            f"failed after {max_attempts} attempts: {_describe(last_error)}",
            attempts=max_attempts,
        )

    def _read_body(self, response: httpx.Response, deadline: float) -> bytes:
        """Read the whole body, raising httpx.ReadTimeout once deadline passes."""
        chunks: List[bytes] = []
        for chunk in response.iter_bytes():
            chunks.append(chunk)
            if time.perf_counter() > deadline:
                raise httpx.ReadTimeout(
                    f"response not complete within {self._config.timeout_s}s",
                    request=response.request,
                )
        return b"".join(chunks)


def _describe(exc: Optional[BaseException]) -> str:
    # httpx timeouts often carry an empty message
    if exc is None:
        return "unknown error"
    text = str(exc)
    return text if text else type(exc).__name__
