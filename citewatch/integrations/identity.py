"""Resolve a user's contact address through the auth admin API."""

import logging
import os
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class IdentityResolver:
    """Look up a user's email by id.

    Usage::

        resolver = IdentityResolver(base_url="https://project.example.co", api_key="...")
        email = await resolver.resolve("user-uuid")
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = (base_url or os.getenv("IDENTITY_API_URL", "")).rstrip("/")
        self._api_key = api_key if api_key is not None else os.getenv("IDENTITY_API_KEY", "")
        self._timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self._base_url)

    async def resolve(self, user_id: str) -> Optional[str]:
        """Return the user's email, or None when the user cannot be resolved.

        Raises:
            httpx.HTTPError: On transport failures.
        """
        url = f"{self._base_url}/auth/v1/admin/users/{user_id}"
        headers = {"Authorization": f"Bearer {self._api_key}", "apikey": self._api_key}
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.get(url, headers=headers)

        if response.status_code != 200:
            logger.warning("Identity lookup for %s returned HTTP %d", user_id, response.status_code)
            return None
        email = (response.json() or {}).get("email")
        return email or None
