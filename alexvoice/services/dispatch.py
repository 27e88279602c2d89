"""Command classification and skill dispatch.

Transcripts are matched, case-insensitively, against COMMAND_ROUTES in
order. The first route whose prefix starts the transcript wins; a
transcript that matches nothing goes to the chat fallback.

    classify("Search YouTube for lofi beats")
    -> Command(kind=YOUTUBE_SEARCH, argument="lofi beats")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from alexvoice.models import Command, CommandKind, SkillResult
from alexvoice.services.skills import (
    KnowledgeCatalog,
    SkillLookupError,
    WebSearchClient,
    find_product,
    format_product,
    format_search_results,
    youtube_search_url,
    youtube_video_url,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandRoute:
    """A command prefix and whether the rest of the transcript is its argument."""
    kind: CommandKind
    prefix: str
    takes_argument: bool = True

    def matches(self, transcript: str) -> bool:
        return transcript.lower().startswith(self.prefix)

    def extract(self, transcript: str) -> Command:
        argument = transcript[len(self.prefix):].strip() if self.takes_argument else None
        return Command(kind=self.kind, argument=argument)


# Priority order: earlier routes shadow later ones.
COMMAND_ROUTES: tuple[CommandRoute, ...] = (
    CommandRoute(CommandKind.YOUTUBE_SEARCH, "search youtube for"),
    CommandRoute(CommandKind.YOUTUBE_VIDEO, "open youtube video", takes_argument=False),
    CommandRoute(CommandKind.WEB_SEARCH, "search stock for"),
    CommandRoute(CommandKind.KNOWLEDGE_LOOKUP, "tell me about"),
)


def classify(transcript: str) -> Command | None:
    """Return the first matching command, or None for the chat fallback."""
    for route in COMMAND_ROUTES:
        if route.matches(transcript):
            return route.extract(transcript)
    return None


SkillHandler = Callable[[Command], Awaitable[SkillResult]]


class SkillDispatcher:
    """Runs the skill handler registered for a classified command."""

    def __init__(
        self,
        web_search: WebSearchClient,
        catalog: KnowledgeCatalog,
        youtube_video_id: str = "dQw4w9WgXcQ",
    ) -> None:
        self._web_search = web_search
        self._catalog = catalog
        self._youtube_video_id = youtube_video_id
        self._handlers: dict[CommandKind, SkillHandler] = {
            CommandKind.YOUTUBE_SEARCH: self._youtube_search,
            CommandKind.YOUTUBE_VIDEO: self._youtube_video,
            CommandKind.WEB_SEARCH: self._web_search_results,
            CommandKind.KNOWLEDGE_LOOKUP: self._knowledge_lookup,
        }

    async def handle(self, command: Command) -> SkillResult:
        handler = self._handlers[command.kind]
        result = await handler(command)
        logger.info(
            "Skill %s -> %d", command.kind.value, result.status_code,
            extra={"command": command.kind.value, "status_code": result.status_code},
        )
        return result

    async def _youtube_search(self, command: Command) -> SkillResult:
        url = youtube_search_url(command.argument or "")
        return SkillResult(text=f"Opening YouTube search: {url}", location=url)

    async def _youtube_video(self, command: Command) -> SkillResult:
        url = youtube_video_url(self._youtube_video_id)
        return SkillResult(text=f"Opening YouTube video: {url}", location=url)

    async def _web_search_results(self, command: Command) -> SkillResult:
        query = command.argument or ""
        try:
            items = await self._web_search.search(query)
        except SkillLookupError as exc:
            logger.info("Web search for %r gave no results: %s", query, exc)
            return SkillResult(text=f'Sorry, I couldn\'t retrieve stock information for "{query}".')
        return SkillResult(text=format_search_results(items))

    async def _knowledge_lookup(self, command: Command) -> SkillResult:
        name = command.argument or ""
        try:
            products = await self._catalog.fetch()
        except SkillLookupError:
            return SkillResult(
                text="Unable to retrieve knowledge products at this time.",
                status_code=500,
            )

        product = find_product(products, name)
        if product is None:
            return SkillResult(text=f'Sorry, I couldn\'t find information on "{name}".')
        return SkillResult(text=format_product(product))
