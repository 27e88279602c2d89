"""Assistant endpoint: text or audio in, scripted text or synthesized speech out."""

from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse, Response, StreamingResponse
from pydantic import ValidationError
from starlette.background import BackgroundTask
from starlette.datastructures import UploadFile

from alexvoice.models import AssistantRequest, AudioInput, ChatMessage, SkillResult
from alexvoice.services.caller_context import caller_location, caller_time
from alexvoice.services.chat import ChatCompletionError, build_messages, build_system_prompt
from alexvoice.services.container import AssistantServices, get_services
from alexvoice.services.dispatch import classify
from alexvoice.services.skills import encode_uri_component
from alexvoice.services.speech import SpeechStream, SynthesisError
from alexvoice.services.transcription import NoTranscriptError, get_transcript
from alexvoice.telemetry import timed_stage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["assistant"])

INVALID_REQUEST = "Invalid request"
INVALID_AUDIO = "Invalid audio"
COMPLETION_FAILED = "Text completion failed"
SYNTHESIS_FAILED = "Voice synthesis failed"


class InvalidRequestError(Exception):
    """Raised when the multipart form doesn't match the request schema."""


async def parse_request(request: Request) -> AssistantRequest:
    """Validate the `input` and repeated `message` form fields."""
    form = await request.form()

    raw_input = form.get("input")
    if isinstance(raw_input, UploadFile):
        value: str | AudioInput = AudioInput(
            data=await raw_input.read(),
            filename=raw_input.filename or "audio",
            content_type=raw_input.content_type,
        )
    elif isinstance(raw_input, str) and raw_input:
        value = raw_input
    else:
        raise InvalidRequestError("missing input")

    history: list[ChatMessage] = []
    for entry in form.getlist("message"):
        if not isinstance(entry, str):
            raise InvalidRequestError("message must be a text field")
        try:
            history.append(ChatMessage.model_validate_json(entry))
        except ValidationError as exc:
            raise InvalidRequestError(f"bad message entry: {exc.error_count()} errors") from exc

    return AssistantRequest(input=value, message=history)


def skill_response(result: SkillResult) -> Response:
    headers = {"Location": result.location} if result.location else None
    return PlainTextResponse(result.text, status_code=result.status_code, headers=headers)


async def _relay(stream: SpeechStream):
    try:
        async for chunk in stream.aiter_bytes():
            yield chunk
    finally:
        await stream.aclose()


async def _finish_stream(stream: SpeechStream, started: float, request_id: str | None) -> None:
    # Runs even when the body iterator never started (early client disconnect)
    await stream.aclose()
    duration_ms = round((time.perf_counter() - started) * 1000, 1)
    logger.info(
        "stream took %.1fms", duration_ms,
        extra={"request_id": request_id, "stage": "stream", "duration_ms": duration_ms},
    )


def audio_response(
    stream: SpeechStream,
    transcript: str,
    response_text: str,
    request_id: str | None = None,
) -> StreamingResponse:
    """Stream synthesized audio with the percent-encoded texts as headers.

    The background task runs only after the last body chunk has been sent,
    so closing the upstream response and logging never hold up the audio.
    """
    return StreamingResponse(
        _relay(stream),
        media_type="application/octet-stream",
        headers={
            "X-Transcript": encode_uri_component(transcript),
            "X-Response": encode_uri_component(response_text),
        },
        background=BackgroundTask(_finish_stream, stream, time.perf_counter(), request_id),
    )


@router.post("")
async def assist(
    request: Request,
    services: AssistantServices = Depends(get_services),
) -> Response:
    """Answer one utterance, with a scripted skill or the chat model plus speech."""
    request_id = getattr(request.state, "request_id", None)

    try:
        body = await parse_request(request)
    except InvalidRequestError as exc:
        logger.info("Rejected request: %s", exc, extra={"request_id": request_id})
        return PlainTextResponse(INVALID_REQUEST, status_code=400)

    try:
        with timed_stage("transcribe", request_id):
            transcript = await get_transcript(body.input, services.transcriber)
    except NoTranscriptError as exc:
        logger.info("No transcript: %s", exc, extra={"request_id": request_id})
        return PlainTextResponse(INVALID_AUDIO, status_code=400)

    command = classify(transcript)
    if command is not None:
        return skill_response(await services.skills.handle(command))

    system_prompt = build_system_prompt(
        location=caller_location(request.headers),
        time=caller_time(request.headers),
    )
    messages = build_messages(system_prompt, body.message, transcript)

    try:
        with timed_stage("text completion", request_id):
            response_text = await services.chat.complete(messages)
    except ChatCompletionError:
        logger.exception("Chat completion failed", extra={"request_id": request_id})
        return PlainTextResponse(COMPLETION_FAILED, status_code=500)

    try:
        with timed_stage("speech request", request_id):
            stream = await services.synthesizer.synthesize(response_text)
    except SynthesisError:
        return PlainTextResponse(SYNTHESIS_FAILED, status_code=500)

    return audio_response(stream, transcript, response_text, request_id)
