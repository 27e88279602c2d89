"""Upstream clients wired together once at startup.

The router never builds clients itself: it receives an AssistantServices
through the get_services dependency, which tests replace with doubles
via app.dependency_overrides.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import boto3
import httpx
from fastapi import Request
from groq import AsyncGroq

from alexvoice.config import Settings
from alexvoice.services.chat import BedrockChatClient, ChatClient, GroqChatClient
from alexvoice.services.dispatch import SkillDispatcher
from alexvoice.services.skills import KnowledgeCatalog, WebSearchClient
from alexvoice.services.speech import SpeechSynthesizer
from alexvoice.services.transcription import Transcriber

logger = logging.getLogger(__name__)


@dataclass
class AssistantServices:
    transcriber: Transcriber
    chat: ChatClient
    synthesizer: SpeechSynthesizer
    skills: SkillDispatcher
    http: httpx.AsyncClient | None = None
    groq: AsyncGroq | None = None

    async def aclose(self) -> None:
        if self.http is not None:
            await self.http.aclose()
        if self.groq is not None:
            await self.groq.close()


def _build_chat_client(settings: Settings, groq: AsyncGroq | None) -> ChatClient:
    if settings.chat_provider == "bedrock":
        bedrock = None
        if settings.has_aws_credentials:
            bedrock = boto3.client(
                "bedrock-runtime",
                region_name=settings.aws_region,
                aws_access_key_id=settings.aws_access_key_id,
                aws_secret_access_key=settings.aws_secret_access_key,
            )
        else:
            logger.warning("CHAT_PROVIDER=bedrock but AWS credentials are missing")
        return BedrockChatClient(bedrock, model=settings.bedrock_model_id)
    return GroqChatClient(groq, model=settings.chat_model)


def build_services(settings: Settings) -> AssistantServices:
    """Construct every upstream client from settings."""
    timeout = settings.upstream_timeout_seconds
    http = httpx.AsyncClient(timeout=timeout)

    groq = None
    if settings.has_groq_key:
        # No retries anywhere in the pipeline
        groq = AsyncGroq(api_key=settings.groq_api_key, timeout=timeout, max_retries=0)
    else:
        logger.warning("GROQ_API_KEY is not set; audio input and Groq chat will fail")

    if not settings.has_cartesia_key:
        logger.warning("CARTESIA_API_KEY is not set; speech synthesis will fail")
    if not settings.has_search_credentials:
        logger.warning("Google CSE credentials are not set; web search will apologize")

    return AssistantServices(
        transcriber=Transcriber(groq, model=settings.transcription_model),
        chat=_build_chat_client(settings, groq),
        synthesizer=SpeechSynthesizer(
            http,
            api_key=settings.cartesia_api_key,
            url=settings.cartesia_url,
            version=settings.cartesia_version,
            model_id=settings.tts_model_id,
            voice_id=settings.tts_voice_id,
            sample_rate=settings.tts_sample_rate,
        ),
        skills=SkillDispatcher(
            WebSearchClient(
                http,
                api_key=settings.google_cse_api_key,
                cx=settings.google_cse_cx,
                url=settings.google_cse_url,
            ),
            KnowledgeCatalog(http, url=settings.knowledge_catalog_url),
            youtube_video_id=settings.youtube_video_id,
        ),
        http=http,
        groq=groq,
    )


def get_services(request: Request) -> AssistantServices:
    """FastAPI dependency returning the services built at startup."""
    return request.app.state.services
