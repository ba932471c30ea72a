"""Speech synthesis for assistant replies via the upstream ``/audio/speech`` API.

Audio is returned inline as a ``data:`` URL so it can be persisted on the
message and pushed to viewers without a separate file store.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from agent_console.config import Settings

logger = logging.getLogger(__name__)

# Speech output in wav format starts with a 44-byte RIFF header
WAV_RIFF_MAGIC = b"RIFF"
WAV_HEADER_SIZE = 44

# ``pcm`` output from the speech endpoint is 24kHz mono 16-bit
PCM_SAMPLE_RATE = 24_000

MIME_TYPES = {
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "wave": "audio/wav",
    "ogg": "audio/ogg",
    "opus": "audio/ogg",
    "flac": "audio/flac",
    "aac": "audio/aac",
    "pcm": "audio/pcm",
}


class SpeechSynthesisError(Exception):
    """Speech could not be synthesized (unconfigured or request failed)."""


@dataclass
class SynthesisResult:
    audio_url: str
    duration_ms: Optional[int]
    voice: str
    format: str


def infer_audio_mime_type(audio_format: str) -> str:
    return MIME_TYPES.get(audio_format.lower(), "application/octet-stream")


def estimate_duration_ms(audio: bytes, audio_format: str) -> Optional[int]:
    """Playback length for uncompressed output; ``None`` for compressed formats."""
    audio_format = audio_format.lower()
    if audio_format in ("wav", "wave"):
        if audio[:4] != WAV_RIFF_MAGIC or len(audio) <= WAV_HEADER_SIZE:
            return None
        sample_rate = int.from_bytes(audio[24:28], "little")
        byte_rate = int.from_bytes(audio[28:32], "little")
        if not sample_rate or not byte_rate:
            return None
        return round((len(audio) - WAV_HEADER_SIZE) / byte_rate * 1000)
    if audio_format == "pcm":
        return round(len(audio) / (PCM_SAMPLE_RATE * 2) * 1000)
    return None


class SpeechSynthesizer:
    """Text-to-speech against the upstream model API."""

    def __init__(
        self, settings: Settings, http_client: httpx.AsyncClient | None = None
    ) -> None:
        self._settings = settings
        self._client = http_client or httpx.AsyncClient(timeout=30.0)
        self._owns_client = http_client is None

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
        logger.info("SpeechSynthesizer closed")

    async def synthesize(
        self,
        text: str,
        voice: str | None = None,
        audio_format: str | None = None,
    ) -> SynthesisResult:
        """Synthesize ``text`` and return it as an inline audio URL.

        Raises:
            SpeechSynthesisError: If no API key is configured, the text is
                empty, or the upstream request fails.
        """
        if not self._settings.openai_api_key:
            raise SpeechSynthesisError("TTS is not configured (missing OPENAI_API_KEY)")
        if not text or not text.strip():
            raise SpeechSynthesisError("Nothing to synthesize")

        voice = voice or self._settings.tts_voice
        audio_format = audio_format or self._settings.tts_format
        url = f"{self._settings.openai_api_base_url.rstrip('/')}/audio/speech"

        try:
            response = await self._client.post(
                url,
                headers={"Authorization": f"Bearer {self._settings.openai_api_key}"},
                json={
                    "model": self._settings.tts_model,
                    "voice": voice,
                    "response_format": audio_format,
                    "input": text,
                },
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "TTS API error %d: %s", e.response.status_code, e.response.text[:200]
            )
            raise SpeechSynthesisError(
                f"TTS request failed ({e.response.status_code})"
            ) from e
        except httpx.HTTPError as e:
            logger.error("TTS synthesis failed: %s", e)
            raise SpeechSynthesisError(f"TTS request failed: {e}") from e

        audio = response.content
        mime_type = response.headers.get("content-type") or infer_audio_mime_type(
            audio_format
        )
        duration_ms = estimate_duration_ms(audio, audio_format)
        logger.info(
            "TTS synthesized %d bytes of %s (voice=%s) for text: '%s'",
            len(audio),
            audio_format,
            voice,
            text[:60],
        )

        encoded = base64.b64encode(audio).decode("ascii")
        return SynthesisResult(
            audio_url=f"data:{mime_type};base64,{encoded}",
            duration_ms=duration_ms,
            voice=voice,
            format=audio_format,
        )
