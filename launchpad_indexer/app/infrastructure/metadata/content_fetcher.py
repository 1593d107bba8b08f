from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import httpx

from launchpad_indexer.app.domain.ports.out import ContentFetcher

logger = logging.getLogger(__name__)


class GatewayContentFetcher(ContentFetcher):
    """
    Fetch JSON documents by content hash through a list of HTTP gateway
    mirrors, tried in order. The first gateway that answers with a JSON body
    wins; a gateway error or timeout moves on to the next mirror.
    """

    def __init__(
        self,
        gateways: Sequence[str],
        *,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not gateways:
            raise ValueError("at least one content gateway is required")
        self._gateways = [g if g.endswith("/") else g + "/" for g in gateways]
        self._timeout = timeout
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={"Accept": "application/json"},
        )

    def display_url(self, content_hash: str) -> str:
        return self._gateways[0] + content_hash

    async def fetch_json(self, content_hash: str) -> tuple[Any, str] | None:
        for gateway in self._gateways:
            url = gateway + content_hash
            try:
                response = await self._client.get(url, timeout=self._timeout)
                response.raise_for_status()
                return response.json(), url
            except (httpx.HTTPError, ValueError) as exc:
                # ValueError: body was not JSON
                logger.debug("Gateway %s failed for %s: %r", gateway, content_hash, exc)

        logger.error("Failed to fetch %s from all %s gateways", content_hash, len(self._gateways))
        return None

    async def close(self) -> None:
        await self._client.aclose()
