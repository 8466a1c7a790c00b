"""
Company profile lookup (sector, industry, market cap, business summary).
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

import structlog
import yfinance as yf

from betascope.config import config
from betascope.data.base_fetcher import BaseFetcher, FetchResult

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CompanyProfile:
    """Classification and description data for a ticker."""

    ticker: str
    name: Optional[str] = None
    sector: Optional[str] = None
    industry: Optional[str] = None
    market_cap: Optional[float] = None
    business_summary: Optional[str] = None
    country: Optional[str] = None

    def has_classification(self) -> bool:
        """Check if the profile carries both sector and industry."""
        return bool(self.sector and self.industry)

    @classmethod
    def empty(cls, ticker: str) -> "CompanyProfile":
        return cls(ticker=ticker)

    @classmethod
    def from_info(cls, ticker: str, info: Dict[str, Any]) -> "CompanyProfile":
        """Map a yfinance `info` dict to a profile."""
        market_cap = info.get("marketCap")
        try:
            market_cap = float(market_cap) if market_cap is not None else None
        except (TypeError, ValueError):
            market_cap = None

        return cls(
            ticker=ticker,
            name=info.get("longName") or info.get("shortName"),
            sector=info.get("sector") or None,
            industry=info.get("industry") or None,
            market_cap=market_cap,
            business_summary=info.get("longBusinessSummary") or None,
            country=info.get("country") or None,
        )


class CompanyProfileFetcher(BaseFetcher):
    """
    Fetch company profiles from yfinance.

    Profiles are cached on the instance; create one fetcher per request so the
    cache never outlives a single analysis.
    """

    SOURCE = "yfinance_info"

    def __init__(self, timeout: Optional[float] = None, max_concurrent: Optional[int] = None):
        super().__init__(timeout or config.fetch_timeout)
        self._cache: Dict[str, CompanyProfile] = {}
        self._max_concurrent = max_concurrent or config.max_concurrent_fetches

    async def fetch(self, identifier: str, **kwargs: Any) -> Optional[CompanyProfile]:
        ticker = identifier.strip().upper()
        if ticker in self._cache:
            logger.debug("profile_from_cache", ticker=ticker)
            return self._cache[ticker]

        logger.info("fetching_company_profile", ticker=ticker)
        info = await asyncio.to_thread(self._get_info, ticker)

        # yfinance returns a near-empty dict for unknown symbols
        if not info or ("symbol" not in info and "shortName" not in info):
            return None

        profile = CompanyProfile.from_info(ticker, info)
        self._cache[ticker] = profile
        logger.info(
            "company_profile_fetched",
            ticker=ticker,
            sector=profile.sector,
            industry=profile.industry,
            summary_chars=len(profile.business_summary or ""),
        )
        return profile

    def _get_info(self, ticker: str) -> Dict[str, Any]:
        return yf.Ticker(ticker).info

    async def fetch_profile(self, ticker: str) -> FetchResult:
        return await self.fetch_with_timeout(ticker)

    async def fetch_many(self, tickers: Iterable[str]) -> Dict[str, Optional[CompanyProfile]]:
        """
        Fetch profiles for multiple tickers concurrently.

        Returns:
            Dict mapping ticker to CompanyProfile (None if the fetch failed)
        """
        tickers = list(dict.fromkeys(tickers))
        logger.info("batch_fetching_profiles", ticker_count=len(tickers))
        semaphore = asyncio.Semaphore(self._max_concurrent)

        async def fetch_with_semaphore(ticker: str):
            async with semaphore:
                result = await self.fetch_profile(ticker)
                return ticker, result.value if result.ok else None

        pairs = await asyncio.gather(*(fetch_with_semaphore(t) for t in tickers))
        results = dict(pairs)

        success_count = sum(1 for v in results.values() if v is not None)
        logger.info(
            "batch_fetch_complete",
            total=len(tickers),
            success=success_count,
            failed=len(tickers) - success_count,
        )
        return results
