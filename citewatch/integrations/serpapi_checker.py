"""SerpApi-backed citation checks for Google AI overviews and Bing answers."""

import asyncio
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from citewatch.utils.helpers import normalize_domain
from citewatch.utils.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

SERPAPI_URL = "https://serpapi.com/search.json"


@dataclass
class CitationExtraction:
    """Citation facts pulled out of one answer-engine response."""
    is_cited: bool = False
    citation_position: Optional[int] = None
    ai_answer: str = ""
    cited_sources: list[dict[str, Any]] = field(default_factory=list)
    total_sources: int = 0


def _match_sources(
    answer: str,
    sources: list[dict[str, Any]],
    domain: str,
) -> CitationExtraction:
    """Locate ``domain`` among cited source hosts, then in the answer text.

    A source matches when its host is ``domain`` or a subdomain of it.
    """
    result = CitationExtraction(
        ai_answer=answer,
        cited_sources=[
            {"title": s.get("title", ""), "link": s.get("link", "")}
            for s in sources if isinstance(s, dict)
        ],
        total_sources=len(sources),
    )
    needle = normalize_domain(domain)
    for index, source in enumerate(result.cited_sources):
        host = normalize_domain(source.get("link") or "")
        if needle and (host == needle or host.endswith("." + needle)):
            result.is_cited = True
            result.citation_position = index + 1
            break

    if not result.is_cited and needle and needle in answer.lower():
        result.is_cited = True
        result.citation_position = len(result.cited_sources) + 1
    return result


def extract_google(serp_data: dict[str, Any], domain: str) -> CitationExtraction:
    """Read the ``ai_overview`` block of a Google SerpApi response."""
    overview = serp_data.get("ai_overview") or {}
    if not overview:
        return CitationExtraction()
    return _match_sources(
        overview.get("overview") or "",
        overview.get("sources") or [],
        domain,
    )


def extract_bing(serp_data: dict[str, Any], domain: str) -> CitationExtraction:
    """Read the ``answer_box`` block of a Bing SerpApi response."""
    box = serp_data.get("answer_box") or {}
    if not box:
        return CitationExtraction()
    return _match_sources(
        box.get("answer") or box.get("snippet") or "",
        box.get("links") or [],
        domain,
    )


ENGINE_EXTRACTORS = {
    "google": extract_google,
    "bing": extract_bing,
}


class SerpApiCitationChecker:
    """Check whether a domain is cited in AI answers via SerpApi.

    Instances are callable with the check-capability signature used by
    the monitoring orchestrator.

    Usage::

        checker = SerpApiCitationChecker(api_key="...")
        result = await checker("best crm for startups", "example.com", "user-1", "google")
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        requests_per_minute: int = 30,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
        gl: str = "us",
        hl: str = "en",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = api_key if api_key is not None else os.getenv("SERPAPI_KEY", "")
        self._limiter = RateLimiter(requests_per_minute=requests_per_minute, name="serpapi")
        self._timeout = timeout
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._gl = gl
        self._hl = hl
        self._transport = transport

    @property
    def engines(self) -> list[str]:
        return list(ENGINE_EXTRACTORS)

    def _params(self, engine: str, query: str) -> dict[str, Any]:
        params: dict[str, Any] = {"engine": engine, "q": query, "api_key": self._api_key}
        if engine == "google":
            params.update({"gl": self._gl, "hl": self._hl})
        else:
            params["cc"] = self._gl.upper()
        return params

    async def _request_with_retry(
        self,
        client: httpx.AsyncClient,
        params: dict[str, Any],
    ) -> dict[str, Any]:
        """GET SerpApi with exponential backoff on 429s and timeouts."""
        for attempt in range(self._max_retries + 1):
            try:
                await self._limiter.acquire()
                response = await client.get(SERPAPI_URL, params=params)
                if response.status_code == 429 and attempt < self._max_retries:
                    wait = self._retry_base_delay * (2 ** attempt)
                    logger.warning(
                        "SerpApi 429 Too Many Requests. Retry %d/%d in %.1fs...",
                        attempt + 1, self._max_retries, wait,
                    )
                    await asyncio.sleep(wait)
                    continue
                response.raise_for_status()
                data = response.json()
                if isinstance(data, dict) and data.get("error"):
                    raise RuntimeError(f"SerpApi request failed: {data['error']}")
                return data
            except httpx.TimeoutException:
                if attempt < self._max_retries:
                    wait = self._retry_base_delay * (2 ** attempt)
                    logger.warning(
                        "SerpApi timeout. Retry %d/%d in %.1fs...",
                        attempt + 1, self._max_retries, wait,
                    )
                    await asyncio.sleep(wait)
                    continue
                raise
        raise RuntimeError("SerpApi retries exhausted")

    async def check(
        self,
        query: str,
        domain: str,
        user_id: str,
        engine: str,
    ) -> dict[str, Any]:
        """Run one citation check and return a snake_case response dict.

        Raises:
            RuntimeError: When no API key is configured.
            ValueError: For an engine without an extractor.
            httpx.HTTPError: When the request ultimately fails.
        """
        extractor = ENGINE_EXTRACTORS.get(engine)
        if extractor is None:
            raise ValueError(f"Unsupported engine: {engine!r}")
        if not self._api_key:
            raise RuntimeError(
                "SerpApi key not configured. Set SERPAPI_KEY in the environment."
            )

        domain_clean = normalize_domain(domain)
        logger.info("Checking %s citation for %r / %r (user=%s)", engine, query, domain_clean, user_id)

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            serp_data = await self._request_with_retry(client, self._params(engine, query))

        extraction = extractor(serp_data, domain_clean)
        logger.debug(
            "%s extraction for %r: cited=%s position=%s sources=%d",
            engine, query, extraction.is_cited,
            extraction.citation_position, extraction.total_sources,
        )
        return {
            "is_cited": extraction.is_cited,
            "citation_position": extraction.citation_position,
            "ai_answer": extraction.ai_answer,
            "cited_sources": extraction.cited_sources,
            "total_sources": extraction.total_sources,
            "recommendations": "",
            "engine": engine,
        }

    async def __call__(self, query: str, domain: str, user_id: str, engine: str) -> dict[str, Any]:
        return await self.check(query, domain, user_id, engine)
