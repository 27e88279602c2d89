"""Scripted skills: YouTube links, web search and the knowledge catalog.

The search and catalog clients raise SkillLookupError for any
infrastructure problem; deciding how that surfaces to the caller
(apology text or a 500) is left to the dispatcher.
"""

from __future__ import annotations

import logging
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from alexvoice.models import CatalogProduct, SearchItem
from alexvoice.telemetry import trace_span

logger = logging.getLogger(__name__)

YOUTUBE_SEARCH_URL = "https://www.youtube.com/results?search_query={query}"
YOUTUBE_WATCH_URL = "https://www.youtube.com/watch?v={video_id}"

# Characters JavaScript's encodeURIComponent leaves alone
_URI_COMPONENT_SAFE = "-_.!~*'()"


class SkillLookupError(Exception):
    """Raised when a skill's upstream service can't be reached or parsed."""


def encode_uri_component(value: str) -> str:
    """Percent-encode everything except unreserved URI characters."""
    return quote(value, safe=_URI_COMPONENT_SAFE)


# ---------------------------------------------------------------------------
# YouTube
# ---------------------------------------------------------------------------

def youtube_search_url(query: str) -> str:
    return YOUTUBE_SEARCH_URL.format(query=encode_uri_component(query))


def youtube_video_url(video_id: str) -> str:
    return YOUTUBE_WATCH_URL.format(video_id=encode_uri_component(video_id))


# ---------------------------------------------------------------------------
# Web search (Google Custom Search JSON API)
# ---------------------------------------------------------------------------

def format_search_results(items: list[SearchItem]) -> str:
    """One "title / snippet / link" block per item, separated by blank lines."""
    return "\n\n".join(f"{item.title}\n{item.snippet}\n{item.link}" for item in items)


class WebSearchClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        api_key: str,
        cx: str,
        url: str = "https://www.googleapis.com/customsearch/v1",
    ) -> None:
        self._http = http
        self._api_key = api_key
        self._cx = cx
        self.url = url

    async def search(self, query: str) -> list[SearchItem]:
        """Return the result items for a query.

        Raises:
            SkillLookupError: when unconfigured, unreachable, non-2xx, or the
                payload has no usable items.
        """
        if not (self._api_key and self._cx):
            raise SkillLookupError("web search is not configured")

        params = {"q": query, "key": self._api_key, "cx": self._cx}
        with trace_span("upstream.web_search", {"search.query_chars": len(query)}):
            try:
                response = await self._http.get(self.url, params=params)
            except httpx.HTTPError as exc:
                logger.error("Error fetching web search results: %s", exc)
                raise SkillLookupError(str(exc)) from exc

        if not response.is_success:
            logger.error(
                "Web search API error: %d %s", response.status_code, response.reason_phrase,
                extra={"upstream": "google_cse", "status_code": response.status_code},
            )
            raise SkillLookupError(f"web search returned {response.status_code}")

        try:
            raw_items = response.json()["items"]
            items = [SearchItem.model_validate(item) for item in raw_items]
        except (ValueError, KeyError, TypeError, ValidationError) as exc:
            logger.error("Malformed web search payload: %s", exc)
            raise SkillLookupError("malformed web search payload") from exc

        if not items:
            raise SkillLookupError("no search results")
        return items


# ---------------------------------------------------------------------------
# Knowledge catalog
# ---------------------------------------------------------------------------

def format_product(product: CatalogProduct) -> str:
    return (
        f"Product Name: {product.name}\n"
        f"Description: {product.description}\n"
        f"Link: {product.link}"
    )


def find_product(products: list[CatalogProduct], name: str) -> CatalogProduct | None:
    """Exact, case-insensitive name match. First match wins."""
    wanted = name.lower()
    for product in products:
        if product.name.lower() == wanted:
            return product
    return None


class KnowledgeCatalog:
    """Fetches the full product catalog; matching happens locally."""

    def __init__(self, http: httpx.AsyncClient, *, url: str) -> None:
        self._http = http
        self.url = url

    async def fetch(self) -> list[CatalogProduct]:
        with trace_span("upstream.catalog", {"catalog.url": self.url}):
            try:
                response = await self._http.get(self.url)
            except httpx.HTTPError as exc:
                logger.error("Error fetching knowledge products: %s", exc)
                raise SkillLookupError(str(exc)) from exc

        if not response.is_success:
            logger.error(
                "Failed to fetch knowledge products: %d %s",
                response.status_code, response.reason_phrase,
                extra={"upstream": "catalog", "status_code": response.status_code},
            )
            raise SkillLookupError(f"catalog returned {response.status_code}")

        try:
            records = response.json()
        except ValueError as exc:
            logger.error("Knowledge catalog is not valid JSON: %s", exc)
            raise SkillLookupError("catalog is not valid JSON") from exc

        if not isinstance(records, list):
            logger.error("Knowledge catalog is not a list: %s", type(records).__name__)
            raise SkillLookupError("catalog is not a list")

        products: list[CatalogProduct] = []
        for record in records:
            try:
                products.append(CatalogProduct.model_validate(record))
            except ValidationError:
                logger.debug("Skipping malformed catalog record: %r", record)
        return products
