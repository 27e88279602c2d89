"""Tests for the assistant endpoint, end to end over ASGI with upstream doubles."""

import json
from types import SimpleNamespace
from urllib.parse import unquote

import httpx
import pytest
import pytest_asyncio
from groq import GroqError
from httpx import ASGITransport, AsyncClient

from alexvoice.main import app
from alexvoice.services.chat import ChatCompletionError
from alexvoice.services.container import AssistantServices, get_services
from alexvoice.services.dispatch import SkillDispatcher
from alexvoice.services.skills import KnowledgeCatalog, WebSearchClient
from alexvoice.services.speech import SpeechSynthesizer
from alexvoice.services.transcription import Transcriber

CATALOG_URL = "https://catalog.test/knowledge-products.json"
PCM = b"\x00\x00\x80\x3f" * 256


class FakeChat:
    model = "fake"

    def __init__(self, reply: str = "It's sunny.", error: Exception | None = None) -> None:
        self.reply = reply
        self.error = error
        self.calls: list[list[dict]] = []

    async def complete(self, messages):
        self.calls.append(messages)
        if self.error:
            raise self.error
        return self.reply


class FakeTranscriptions:
    def __init__(self, text: str = "", error: Exception | None = None) -> None:
        self.text = text
        self.error = error

    async def create(self, **kwargs):
        if self.error:
            raise self.error
        return SimpleNamespace(text=self.text)


class Upstreams:
    """Routes every outbound HTTP call by host; each behavior is swappable per test."""

    def __init__(self) -> None:
        self.catalog: httpx.Response | Exception = httpx.Response(200, json=[
            {"name": "WidgetPro", "description": "Smart widgets.", "link": "https://aitek.test/widgetpro"},
        ])
        self.search: httpx.Response | Exception = httpx.Response(200, json={"items": []})
        self.speech: httpx.Response | Exception = httpx.Response(200, content=PCM)
        self.hosts: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.hosts.append(request.url.host)
        outcome = {
            "catalog.test": self.catalog,
            "search.test": self.search,
            "tts.test": self.speech,
        }[request.url.host]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def upstreams() -> Upstreams:
    return Upstreams()


@pytest.fixture
def chat() -> FakeChat:
    return FakeChat()


@pytest.fixture
def transcriptions() -> FakeTranscriptions:
    return FakeTranscriptions(text="what's the weather")


@pytest_asyncio.fixture
async def client(upstreams: Upstreams, chat: FakeChat, transcriptions: FakeTranscriptions):
    http = httpx.AsyncClient(transport=httpx.MockTransport(upstreams))
    services = AssistantServices(
        transcriber=Transcriber(SimpleNamespace(audio=SimpleNamespace(transcriptions=transcriptions))),
        chat=chat,
        synthesizer=SpeechSynthesizer(http, api_key="test-key", url="https://tts.test/tts/bytes"),
        skills=SkillDispatcher(
            WebSearchClient(http, api_key="k", cx="cx", url="https://search.test/customsearch/v1"),
            KnowledgeCatalog(http, url=CATALOG_URL),
        ),
        http=http,
    )
    app.dependency_overrides[get_services] = lambda: services

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
    await services.aclose()


@pytest.mark.asyncio
async def test_health(client: AsyncClient) -> None:
    resp = await client.get("/api/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert set(data["configured"]) == {"groq", "bedrock", "cartesia", "web_search"}


# ---------------------------------------------------------------------------
# Request validation and transcription
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_missing_input_rejected(client: AsyncClient) -> None:
    resp = await client.post("/api", data={"message": json.dumps({"role": "user", "content": "hi"})})
    assert resp.status_code == 400
    assert resp.text == "Invalid request"


@pytest.mark.asyncio
@pytest.mark.parametrize("entry", [
    "not json",
    json.dumps({"role": "system", "content": "hi"}),
    json.dumps({"role": "user"}),
    json.dumps({"role": "user", "content": 5}),
])
async def test_malformed_message_rejects_whole_request(
    client: AsyncClient, chat: FakeChat, entry: str,
) -> None:
    valid = json.dumps({"role": "user", "content": "hi"})
    resp = await client.post("/api", data={"input": "hello", "message": [valid, entry]})
    assert resp.status_code == 400
    assert resp.text == "Invalid request"
    assert chat.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("text, error", [
    ("   ", None),
    ("", None),
    ("ignored", GroqError("empty audio file")),
])
async def test_unusable_audio_is_400(
    client: AsyncClient, chat: FakeChat, transcriptions: FakeTranscriptions, text, error,
) -> None:
    transcriptions.text = text
    transcriptions.error = error

    resp = await client.post("/api", files={"input": ("clip.webm", b"\x1a\x45", "audio/webm")})
    assert resp.status_code == 400
    assert resp.text == "Invalid audio"
    assert chat.calls == []


@pytest.mark.asyncio
async def test_audio_transcript_drives_chat(client: AsyncClient, chat: FakeChat) -> None:
    resp = await client.post("/api", files={"input": ("clip.webm", b"\x1a\x45", "audio/webm")})
    assert resp.status_code == 200
    assert unquote(resp.headers["X-Transcript"]) == "what's the weather"
    assert chat.calls[0][-1] == {"role": "user", "content": "what's the weather"}


# ---------------------------------------------------------------------------
# Skill paths
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_youtube_search(client: AsyncClient, chat: FakeChat) -> None:
    resp = await client.post("/api", data={"input": "search youtube for lofi beats"})
    url = "https://www.youtube.com/results?search_query=lofi%20beats"
    assert resp.status_code == 200
    assert url in resp.text
    assert resp.headers["location"] == url
    assert "x-transcript" not in resp.headers
    assert chat.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("text", [
    "SEARCH YOUTUBE FOR cats",
    "open youtube video",
    "search stock for ACME",
    "tell me about WidgetPro",
    "Tell me about something missing",
])
async def test_skill_paths_never_call_chat(client: AsyncClient, chat: FakeChat, upstreams, text) -> None:
    resp = await client.post("/api", data={"input": text})
    assert resp.status_code == 200
    assert chat.calls == []
    assert "tts.test" not in upstreams.hosts


@pytest.mark.asyncio
async def test_tell_me_about_found(client: AsyncClient) -> None:
    resp = await client.post("/api", data={"input": "tell me about WidgetPro"})
    assert resp.status_code == 200
    assert resp.text == (
        "Product Name: WidgetPro\n"
        "Description: Smart widgets.\n"
        "Link: https://aitek.test/widgetpro"
    )


@pytest.mark.asyncio
async def test_tell_me_about_not_found(client: AsyncClient) -> None:
    resp = await client.post("/api", data={"input": "tell me about Nonexistent"})
    assert resp.status_code == 200
    assert "Nonexistent" in resp.text
    assert resp.text.startswith("Sorry")


@pytest.mark.asyncio
async def test_tell_me_about_catalog_down(client: AsyncClient, upstreams: Upstreams, chat: FakeChat) -> None:
    upstreams.catalog = httpx.ConnectError("refused")
    resp = await client.post("/api", data={"input": "tell me about WidgetPro"})
    assert resp.status_code == 500
    assert resp.text == "Unable to retrieve knowledge products at this time."
    assert chat.calls == []


@pytest.mark.asyncio
async def test_stock_search_failure_is_apology(client: AsyncClient, upstreams: Upstreams) -> None:
    upstreams.search = httpx.Response(500, text="backend error")
    resp = await client.post("/api", data={"input": "search stock for ACME"})
    assert resp.status_code == 200
    assert resp.text == 'Sorry, I couldn\'t retrieve stock information for "ACME".'


# ---------------------------------------------------------------------------
# Chat + synthesis path
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_chat_path_streams_audio(client: AsyncClient, chat: FakeChat) -> None:
    history = [
        json.dumps({"role": "user", "content": "hello"}),
        json.dumps({"role": "assistant", "content": "Greetings, My Highness."}),
    ]
    resp = await client.post(
        "/api",
        data={"input": "what's the weather", "message": history},
        headers={"x-vercel-ip-timezone": "Asia/Manila"},
    )

    assert resp.status_code == 200
    assert resp.content == PCM
    assert unquote(resp.headers["X-Transcript"]) == "what's the weather"
    assert unquote(resp.headers["X-Response"]) == "It's sunny."
    assert "X-Request-ID" in resp.headers

    messages = chat.calls[0]
    assert messages[0]["role"] == "system"
    assert "User location is unknown." in messages[0]["content"]
    assert messages[1:] == [
        {"role": "user", "content": "hello"},
        {"role": "assistant", "content": "Greetings, My Highness."},
        {"role": "user", "content": "what's the weather"},
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize("zone", ["America", "Asia/", "Nowhere/Special"])
async def test_bad_timezone_header_still_answers(client: AsyncClient, chat: FakeChat, zone: str) -> None:
    resp = await client.post(
        "/api",
        data={"input": "what's the weather"},
        headers={"x-vercel-ip-timezone": zone},
    )
    assert resp.status_code == 200
    assert resp.content == PCM
    assert len(chat.calls) == 1


@pytest.mark.asyncio
async def test_upstream_audio_closed_after_response(client: AsyncClient, upstreams: Upstreams) -> None:
    resp = await client.post("/api", data={"input": "what's the weather"})
    assert resp.status_code == 200
    assert upstreams.speech.is_closed


@pytest.mark.asyncio
async def test_headers_round_trip_unicode(client: AsyncClient, chat: FakeChat) -> None:
    transcript = "¿Qué hora es? 東京 🌸\nline two"
    chat.reply = "Son las 3 — disfrute, Su Alteza ✨"
    resp = await client.post("/api", data={"input": transcript})

    assert resp.status_code == 200
    assert resp.headers["X-Transcript"].isascii()
    assert resp.headers["X-Response"].isascii()
    assert unquote(resp.headers["X-Transcript"]) == transcript
    assert unquote(resp.headers["X-Response"]) == chat.reply


@pytest.mark.asyncio
async def test_synthesis_failure_is_500(client: AsyncClient, upstreams: Upstreams) -> None:
    upstreams.speech = httpx.Response(402, text="credits exhausted for key sk-123")
    resp = await client.post("/api", data={"input": "what's the weather"})

    assert resp.status_code == 500
    assert resp.text == "Voice synthesis failed"
    assert "credits" not in resp.text
    assert "x-transcript" not in resp.headers


@pytest.mark.asyncio
async def test_chat_failure_is_500(client: AsyncClient, chat: FakeChat, upstreams: Upstreams) -> None:
    chat.error = ChatCompletionError("model overloaded")
    resp = await client.post("/api", data={"input": "what's the weather"})

    assert resp.status_code == 500
    assert resp.text == "Text completion failed"
    assert "tts.test" not in upstreams.hosts
