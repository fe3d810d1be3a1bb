from __future__ import annotations

import logging
from typing import Optional

import httpx

from .errors import FetchError
from .models import FetchResult

logger = logging.getLogger(__name__)


class ContentFetcher:
    """
    Single-shot HTTP GET of a crawl source. No retries and no custom headers;
    redirects and timeouts follow the httpx client's own limits.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self._client = client

    async def fetch(self, url: str) -> FetchResult:
        if self._client is not None:
            return await self._get(self._client, url)
        async with httpx.AsyncClient(follow_redirects=True) as client:
            return await self._get(client, url)

    async def _get(self, client: httpx.AsyncClient, url: str) -> FetchResult:
        try:
            response = await client.get(url)
        except httpx.HTTPError as exc:
            raise FetchError(f"Failed to fetch website: {exc.__class__.__name__}: {exc}", url=url) from exc

        if not response.is_success:
            reason = response.reason_phrase or "error"
            raise FetchError(
                f"Failed to fetch website: {response.status_code} {reason}",
                url=url,
                status_code=response.status_code,
            )

        logger.debug("Fetched %s (%d, %d chars)", url, response.status_code, len(response.text))
        return FetchResult(url=url, status_code=response.status_code, text=response.text)
