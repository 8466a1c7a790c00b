"""
Recommendation-graph lookup: tickers Yahoo relates to a given symbol.
"""

from typing import Any, List, Optional

import structlog

from betascope.config import config
from betascope.data.http_fetcher import HttpFetcher
from betascope.exceptions import DataParsingError

logger = structlog.get_logger(__name__)

RECOMMENDATIONS_URL = "https://query2.finance.yahoo.com/v6/finance/recommendationsbysymbol/{symbol}"


class RecommendationFetcher(HttpFetcher):
    """
    Fetch related tickers from Yahoo's recommendations-by-symbol graph.

    Example:
        async with RecommendationFetcher() as fetcher:
            result = await fetcher.fetch_with_timeout("TCS.NS")
            # result.value == ["INFY.NS", "WIPRO.NS", ...]
    """

    SOURCE = "yahoo_recommendations"

    def __init__(self, timeout: Optional[float] = None, session=None):
        super().__init__(timeout or config.fetch_timeout, session=session)

    async def fetch(self, identifier: str, **kwargs: Any) -> Optional[List[str]]:
        symbol = identifier.strip().upper()
        payload = await self._get(RECOMMENDATIONS_URL.format(symbol=symbol), as_json=True)
        if payload is None:
            return None

        symbols = self.parse_payload(payload)
        logger.info("recommendations_fetched", ticker=symbol, count=len(symbols))
        return symbols

    @staticmethod
    def parse_payload(payload: Any) -> List[str]:
        """
        Extract recommended symbols from the API payload.

        Expected shape:
            {"finance": {"result": [{"symbol": "TCS.NS",
              "recommendedSymbols": [{"symbol": "INFY.NS", "score": 0.2}, ...]}]}}

        Raises:
            DataParsingError: If the payload lacks the result list
        """
        try:
            results = payload["finance"]["result"]
        except (KeyError, TypeError) as e:
            raise DataParsingError(
                "Unexpected recommendations payload",
                raw_data=str(payload),
                expected_type="finance.result list",
                cause=e,
            )

        symbols: List[str] = []
        for entry in results or []:
            for item in entry.get("recommendedSymbols") or []:
                symbol = (item or {}).get("symbol")
                if symbol and symbol.upper() not in symbols:
                    symbols.append(symbol.upper())
        return symbols
