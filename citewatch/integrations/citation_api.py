"""Client for remote per-engine citation-check endpoints."""

import logging
import os
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_ENGINE_PATHS = {
    "google": "/functions/v1/check-sge-citation",
    "bing": "/functions/v1/check-bing-citation",
}


class CitationApiChecker:
    """POST citation-check requests to a hosted endpoint per engine.

    The request body follows the check contract: query, domain, user_id and
    both analysis flags set to false.  The response body is returned as-is;
    callers normalise camelCase and snake_case keys.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        engine_paths: Optional[dict[str, str]] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = (base_url or os.getenv("CITATION_API_URL", "")).rstrip("/")
        self._api_key = api_key if api_key is not None else os.getenv("CITATION_API_KEY", "")
        self._engine_paths = dict(engine_paths or DEFAULT_ENGINE_PATHS)
        self._timeout = timeout
        self._transport = transport

    @property
    def engines(self) -> list[str]:
        return list(self._engine_paths)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
            headers["apikey"] = self._api_key
        return headers

    async def check(
        self,
        query: str,
        domain: str,
        user_id: str,
        engine: str,
    ) -> dict[str, Any]:
        if not self._base_url:
            raise RuntimeError("CITATION_API_URL is not configured.")
        path = self._engine_paths.get(engine)
        if path is None:
            raise ValueError(f"No endpoint configured for engine {engine!r}")

        payload = {
            "query": query,
            "domain": domain,
            "user_id": user_id,
            "include_competitor_analysis": False,
            "include_improvement_suggestions": False,
        }
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(self._base_url + path, json=payload, headers=self._headers())
            response.raise_for_status()
            data = response.json()

        data.setdefault("engine", engine)
        logger.info("Citation API %s check for %r returned", engine, query)
        return data

    async def __call__(self, query: str, domain: str, user_id: str, engine: str) -> dict[str, Any]:
        return await self.check(query, domain, user_id, engine)
