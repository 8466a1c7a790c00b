"""
Shared aiohttp plumbing for collaborators reached over plain HTTP.
"""

from typing import Any, Dict, Optional

import aiohttp
import structlog

from betascope.data.base_fetcher import BaseFetcher
from betascope.exceptions import DataFetchError

logger = structlog.get_logger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    ),
    "Accept-Language": "en-US,en;q=0.9",
}


class HttpFetcher(BaseFetcher):
    """
    BaseFetcher with a lazily created aiohttp session.

    Use as an async context manager to close the session, or pass a session
    owned by the caller (the pipeline shares one per request).
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        super().__init__(timeout)
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "HttpFetcher":
        self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers=DEFAULT_HEADERS,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()

    async def _get(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        as_json: bool = False,
    ) -> Optional[Any]:
        """
        GET a URL.

        Returns:
            Parsed JSON or response text; None on 404

        Raises:
            DataFetchError: On network errors or non-2xx statuses other than 404
        """
        session = self._ensure_session()
        try:
            async with session.get(url, params=params) as response:
                if response.status == 404:
                    logger.debug("http_not_found", url=url)
                    return None
                if response.status >= 400:
                    raise DataFetchError(
                        f"HTTP {response.status} from {url}",
                        source=self.SOURCE,
                        details={"status": response.status},
                    )
                if as_json:
                    return await response.json(content_type=None)
                return await response.text()
        except aiohttp.ClientError as e:
            raise DataFetchError(
                f"Request to {url} failed",
                source=self.SOURCE,
                cause=e,
            ) from e
