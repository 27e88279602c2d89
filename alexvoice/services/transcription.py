"""Speech-to-text powered by Groq Whisper.

Typed input passes through untouched; uploaded audio is sent to the
transcription endpoint. Every way transcription can go wrong (service
error, network error, silence, missing API key) collapses into a single
NoTranscriptError so the caller only has one failure to map.
"""

from __future__ import annotations

import logging

from groq import AsyncGroq, GroqError

from alexvoice.models import AudioInput
from alexvoice.telemetry import trace_span

logger = logging.getLogger(__name__)


class NoTranscriptError(Exception):
    """Raised when no usable transcript can be produced from the input."""


class Transcriber:
    """Batch transcription client.

    Args:
        client: An AsyncGroq client, or None when no API key is configured.
        model: Whisper model identifier.
    """

    def __init__(self, client: AsyncGroq | None, model: str = "whisper-large-v3") -> None:
        self._client = client
        self.model = model

    async def transcribe(self, audio: AudioInput) -> str:
        """Transcribe an audio upload, returning the trimmed, non-empty text."""
        if self._client is None:
            logger.warning("No GROQ_API_KEY configured, cannot transcribe audio")
            raise NoTranscriptError("transcription not configured")

        with trace_span("upstream.transcribe", {"audio.bytes": len(audio.data), "model": self.model}):
            try:
                result = await self._client.audio.transcriptions.create(
                    file=(audio.filename, audio.data),
                    model=self.model,
                )
            except GroqError as exc:
                logger.warning("Transcription failed: %s", exc)
                raise NoTranscriptError(str(exc)) from exc

        text = (result.text or "").strip()
        if not text:
            raise NoTranscriptError("empty transcript")

        logger.info("Transcribed %d bytes -> %d chars", len(audio.data), len(text))
        return text


async def get_transcript(value: str | AudioInput, transcriber: Transcriber) -> str:
    """Normalize request input into a transcript.

    Text is returned verbatim; audio goes through the transcriber.
    """
    if isinstance(value, str):
        return value
    return await transcriber.transcribe(value)
