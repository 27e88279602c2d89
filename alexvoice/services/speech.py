"""Text-to-speech via Cartesia's bytes endpoint.

Returns raw little-endian float32 PCM at a fixed sample rate. The
upstream response is not buffered: synthesize() hands back an open
SpeechStream whose chunks are forwarded to the client as they arrive.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator

import httpx

from alexvoice.telemetry import trace_span

logger = logging.getLogger(__name__)


class SynthesisError(Exception):
    """Raised when the speech service rejects or fails a request."""


class SpeechStream:
    """An open upstream audio response. Close it once the body is sent."""

    def __init__(self, response: httpx.Response) -> None:
        self._response = response

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        async for chunk in self._response.aiter_bytes():
            yield chunk

    async def aclose(self) -> None:
        await self._response.aclose()


class SpeechSynthesizer:
    """Cartesia TTS client with a fixed voice, model and output format."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        api_key: str,
        url: str = "https://api.cartesia.ai/tts/bytes",
        version: str = "2024-06-30",
        model_id: str = "sonic-english",
        voice_id: str = "bd9120b6-7761-47a6-a446-77ca49132781",
        sample_rate: int = 24000,
    ) -> None:
        self._http = http
        self._api_key = api_key
        self.url = url
        self.version = version
        self.model_id = model_id
        self.voice_id = voice_id
        self.sample_rate = sample_rate

    def payload(self, text: str) -> dict:
        return {
            "model_id": self.model_id,
            "transcript": text,
            "voice": {"mode": "id", "id": self.voice_id},
            "output_format": {
                "container": "raw",
                "encoding": "pcm_f32le",
                "sample_rate": self.sample_rate,
            },
        }

    async def synthesize(self, text: str) -> SpeechStream:
        """Start synthesis and return the open audio stream.

        Raises:
            SynthesisError: on a missing key, transport error or non-2xx status.
                The upstream error body is logged, never returned.
        """
        if not self._api_key:
            logger.error("No CARTESIA_API_KEY configured, cannot synthesize speech")
            raise SynthesisError("speech synthesis not configured")

        request = self._http.build_request(
            "POST",
            self.url,
            headers={
                "Cartesia-Version": self.version,
                "X-API-Key": self._api_key,
            },
            json=self.payload(text),
        )

        with trace_span("upstream.speech", {"tts.model": self.model_id, "tts.chars": len(text)}) as span:
            try:
                response = await self._http.send(request, stream=True)
            except httpx.HTTPError as exc:
                logger.error("Speech request failed: %s", exc)
                raise SynthesisError(str(exc)) from exc

            span.set_attribute("http.status_code", response.status_code)
            if not response.is_success:
                try:
                    detail = (await response.aread()).decode("utf-8", errors="replace")
                except httpx.HTTPError as exc:
                    detail = f"<unreadable error body: {exc}>"
                finally:
                    await response.aclose()
                logger.error(
                    "Speech service returned %d: %s", response.status_code, detail,
                    extra={"upstream": "cartesia", "status_code": response.status_code},
                )
                raise SynthesisError(f"speech service returned {response.status_code}")

        return SpeechStream(response)
