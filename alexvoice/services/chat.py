"""Chat-completion fallback for utterances that match no scripted command.

The prompt is the fixed "Alex" persona, then the caller-supplied history
in order, then the new transcript as the final user turn. Two providers
are supported: Groq (default) and Amazon Nova via Bedrock. Either one
raises ChatCompletionError on any failure; nothing is retried.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Protocol

from botocore.exceptions import BotoCoreError, ClientError
from groq import AsyncGroq, GroqError

from alexvoice.models import ChatMessage
from alexvoice.telemetry import trace_span

logger = logging.getLogger(__name__)

PERSONA_TEMPLATE = """\
- You are Alex, the intelligent and reliable trustee assistant of Master E, a visionary and innovative leader.
- Created by Aitek PH Software, under the leadership of Master Emilio.
- You specialize in providing Master E with strategic advice, trustworthy insights, and efficient support in managing daily operations and high-level decision-making.
- Always address Master Ze as "My Highness" with utmost respect, but feel free to add light humor when appropriate.
- You can also:
  - Search YouTube for videos.
  - Open specific YouTube videos.
  - Retrieve realtime information from Google Custom Search if ask by Master E.
  - Provide information on Aitek PH's knowledge products.
- Respond with professionalism and a touch of humor, ensuring clarity and engagement.
- User location is {location}.
- The current time is {time}.
- Your large language model is EmilioLLM version 5.8, an 806 billion parameter version hosted on Cloud GPU."""


class ChatCompletionError(Exception):
    """Raised when the chat provider fails or returns no text."""


class ChatClient(Protocol):
    model: str

    async def complete(self, messages: list[dict[str, str]]) -> str: ...


def build_system_prompt(location: str, time: str) -> str:
    return PERSONA_TEMPLATE.format(location=location, time=time)


def build_messages(
    system_prompt: str,
    history: list[ChatMessage],
    transcript: str,
) -> list[dict[str, str]]:
    """System persona, then history verbatim, then the transcript."""
    messages = [{"role": "system", "content": system_prompt}]
    messages.extend({"role": m.role, "content": m.content} for m in history)
    messages.append({"role": "user", "content": transcript})
    return messages


class GroqChatClient:
    """Chat completions on Groq's OpenAI-compatible API."""

    def __init__(self, client: AsyncGroq | None, model: str = "llama3-8b-8192") -> None:
        self._client = client
        self.model = model

    async def complete(self, messages: list[dict[str, str]]) -> str:
        if self._client is None:
            raise ChatCompletionError("GROQ_API_KEY is not configured")

        with trace_span("upstream.chat", {"chat.provider": "groq", "chat.model": self.model}) as span:
            try:
                completion = await self._client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                )
            except GroqError as exc:
                raise ChatCompletionError(f"Groq chat completion failed: {exc}") from exc

            if not completion.choices or completion.choices[0].message.content is None:
                raise ChatCompletionError("Groq returned no completion text")

            text = completion.choices[0].message.content
            span.set_attribute("chat.chars", len(text))
            return text


class BedrockChatClient:
    """Chat completions on Amazon Nova through the Bedrock runtime.

    The boto3 client is blocking, so each call runs in a worker thread.
    """

    def __init__(self, client: Any, model: str = "amazon.nova-lite-v1:0") -> None:
        self._client = client
        self.model = model

    @staticmethod
    def _normalize_turns(messages: list[dict[str, str]]) -> list[dict[str, Any]]:
        """Nova wants a user turn first and strictly alternating roles.

        Leading assistant turns are dropped; consecutive turns from the same
        role are merged into one, separated by a blank line.
        """
        turns: list[dict[str, Any]] = []
        for m in messages:
            if m["role"] == "system":
                continue
            if not turns and m["role"] != "user":
                continue
            if turns and turns[-1]["role"] == m["role"]:
                turns[-1]["content"].append({"text": m["content"]})
                continue
            turns.append({"role": m["role"], "content": [{"text": m["content"]}]})

        for turn in turns:
            turn["content"] = [{"text": "\n\n".join(block["text"] for block in turn["content"])}]
        return turns

    def _request_body(self, messages: list[dict[str, str]]) -> dict[str, Any]:
        system = [{"text": m["content"]} for m in messages if m["role"] == "system"]
        turns = self._normalize_turns(messages)
        return {
            "messages": turns,
            "system": system,
            "inferenceConfig": {"maxTokens": 1024},
        }

    async def complete(self, messages: list[dict[str, str]]) -> str:
        if self._client is None:
            raise ChatCompletionError("AWS credentials are not configured")

        body = self._request_body(messages)

        def _run() -> str:
            response = self._client.invoke_model(
                modelId=self.model,
                contentType="application/json",
                accept="application/json",
                body=json.dumps(body),
            )
            raw = json.loads(response["body"].read())
            return raw["output"]["message"]["content"][0]["text"]

        with trace_span("upstream.chat", {"chat.provider": "bedrock", "chat.model": self.model}) as span:
            try:
                text = await asyncio.to_thread(_run)
            except (BotoCoreError, ClientError, KeyError, IndexError, json.JSONDecodeError) as exc:
                raise ChatCompletionError(f"Bedrock chat completion failed: {exc}") from exc
            span.set_attribute("chat.chars", len(text))
            return text
