"""
Peer-comparison table scraper for screener.in company pages.

The consolidated page is tried first, then the standalone page, which is
also tried when the consolidated page answers with an HTTP error. Linked
company identifiers are read from the rows of the page's data tables.
"""

from typing import Any, List, Optional

import structlog
from bs4 import BeautifulSoup

from betascope.config import config
from betascope.data.http_fetcher import HttpFetcher
from betascope.exceptions import DataFetchError
from betascope.ticker_utils import base_symbol

logger = structlog.get_logger(__name__)

SCREENER_BASE_URL = "https://www.screener.in"


def parse_peer_table(html: str, limit: Optional[int] = None) -> List[str]:
    """
    Extract company identifiers from a screener.in peer table.

    Rows look like `<tr><td><a href="/company/INFY/consolidated/">Infosys</a></td>...`;
    the identifier is the path segment after `/company/`.

    Args:
        html: Page HTML
        limit: Maximum number of identifiers to return

    Returns:
        Unique identifiers in table order
    """
    soup = BeautifulSoup(html or "", "html.parser")
    peers: List[str] = []

    for row in soup.select(".data-table tbody tr"):
        anchor = row.select_one('td a[href^="/company/"]')
        if anchor is None:
            continue
        parts = (anchor.get("href") or "").split("/")
        symbol = parts[2].strip().upper() if len(parts) > 2 else ""
        if symbol and symbol not in peers:
            peers.append(symbol)

    return peers[:limit] if limit else peers


class ScreenerPeerFetcher(HttpFetcher):
    """
    Scrape peer identifiers (without exchange suffix) for a company.

    Example:
        async with ScreenerPeerFetcher() as fetcher:
            result = await fetcher.fetch_with_timeout("TCS.NS")
            # result.value == ["INFY", "HCLTECH", "WIPRO", ...]
    """

    SOURCE = "screener_peers"

    def __init__(self, timeout: Optional[float] = None, session=None, max_peers: Optional[int] = None):
        super().__init__(timeout or config.fetch_timeout, session=session)
        self.max_peers = max_peers or config.screener_max_peers

    def page_urls(self, identifier: str) -> List[str]:
        symbol = base_symbol(identifier)
        return [
            f"{SCREENER_BASE_URL}/company/{symbol}/consolidated/",
            f"{SCREENER_BASE_URL}/company/{symbol}/",
        ]

    async def fetch(self, identifier: str, **kwargs: Any) -> Optional[List[str]]:
        urls = self.page_urls(identifier)
        errors: List[DataFetchError] = []

        for url in urls:
            try:
                html = await self._get(url)
            except DataFetchError as e:
                logger.warning("screener_page_failed", ticker=identifier, url=url, error=str(e))
                errors.append(e)
                continue
            if html is None:
                continue
            peers = parse_peer_table(html, limit=self.max_peers)
            logger.info("screener_peers_parsed", ticker=identifier, url=url, count=len(peers))
            return peers

        # Only an error on every page is a provider failure; any 404 means no data
        if len(errors) == len(urls):
            raise errors[-1]

        logger.info("screener_page_not_found", ticker=identifier)
        return None
