"""
Daily close-price history fetcher backed by yfinance.

Historical closes are fetched in a worker thread so concurrent subject,
benchmark and peer fetches do not block the event loop.
"""

import asyncio
import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Optional, Tuple, Union

import pandas as pd
import structlog
import yfinance as yf

from betascope.config import config
from betascope.data.base_fetcher import BaseFetcher, FetchResult
from betascope.exceptions import DataFetchError

logger = structlog.get_logger(__name__)

DateLike = Union[str, date, datetime]


def to_date(value: DateLike) -> date:
    """Coerce an ISO string, datetime or date into a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(str(value).strip()[:10]).date()


@dataclass(frozen=True)
class PriceSeries:
    """
    Ordered (date, close) points for one ticker over one window.

    Dates need not be contiguous. A close may be None when the provider
    returned a gap; alignment drops such dates.
    """

    ticker: str
    points: Tuple[Tuple[date, Optional[float]], ...]

    def __len__(self) -> int:
        return len(self.points)

    @property
    def dates(self) -> Tuple[date, ...]:
        return tuple(d for d, _ in self.points)

    @property
    def closes(self) -> Tuple[Optional[float], ...]:
        return tuple(c for _, c in self.points)

    @classmethod
    def from_history(cls, ticker: str, history: pd.DataFrame) -> "PriceSeries":
        """
        Build a series from a yfinance history frame.

        Args:
            ticker: Ticker the frame belongs to
            history: DataFrame indexed by timestamp with a "Close" column
        """
        if history is None or history.empty or "Close" not in history.columns:
            return cls(ticker=ticker, points=())

        points = []
        for timestamp, close in history["Close"].items():
            day = timestamp.date() if hasattr(timestamp, "date") else to_date(timestamp)
            points.append((day, _clean_close(close)))
        points.sort(key=lambda p: p[0])
        return cls(ticker=ticker, points=tuple(points))


def _clean_close(value: Any) -> Optional[float]:
    try:
        close = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(close) or math.isinf(close):
        return None
    return close


class PriceSeriesFetcher(BaseFetcher):
    """
    Fetch daily close-price history for a ticker.

    Example:
        fetcher = PriceSeriesFetcher()
        result = await fetcher.fetch_with_timeout("TCS.NS", start_date="2020-01-01", end_date="2025-01-01")
        if result.ok:
            series = result.value
    """

    SOURCE = "yfinance_history"

    def __init__(self, timeout: Optional[float] = None, auto_adjust: bool = False):
        super().__init__(timeout or config.fetch_timeout)
        self.auto_adjust = auto_adjust

    async def fetch(
        self,
        identifier: str,
        start_date: Optional[DateLike] = None,
        end_date: Optional[DateLike] = None,
        **kwargs: Any,
    ) -> Optional[PriceSeries]:
        if start_date is None or end_date is None:
            raise DataFetchError(
                "start_date and end_date are required",
                source=self.SOURCE,
                ticker=identifier,
            )

        start, end = to_date(start_date), to_date(end_date)
        logger.info("fetching_price_history", ticker=identifier, start=str(start), end=str(end))

        try:
            history = await asyncio.to_thread(self._download, identifier, start, end)
        except (ConnectionError, TimeoutError, ValueError, KeyError) as e:
            raise DataFetchError(
                f"Failed to fetch price history for {identifier}",
                source=self.SOURCE,
                ticker=identifier,
                cause=e,
            ) from e

        series = PriceSeries.from_history(identifier, history)
        logger.info("price_history_fetched", ticker=identifier, points=len(series))
        return series

    def _download(self, ticker: str, start: date, end: date) -> pd.DataFrame:
        stock = yf.Ticker(ticker)
        return stock.history(
            start=start.isoformat(),
            end=end.isoformat(),
            interval="1d",
            auto_adjust=self.auto_adjust,
        )

    async def fetch_series(
        self,
        ticker: str,
        start_date: DateLike,
        end_date: DateLike,
    ) -> FetchResult:
        """Fetch one ticker's series as a FetchResult (never raises)."""
        return await self.fetch_with_timeout(ticker, start_date=start_date, end_date=end_date)

    async def fetch_with_fallback(
        self,
        ticker: str,
        alternate: Optional[str],
        start_date: DateLike,
        end_date: DateLike,
    ) -> FetchResult:
        """
        Fetch a ticker, retrying exactly once with an alternate identifier.

        Returns:
            The first successful FetchResult, or the alternate's failure
        """
        result = await self.fetch_series(ticker, start_date, end_date)
        if result.ok or not alternate or alternate == ticker:
            return result

        logger.info("price_history_retry_alternate", ticker=ticker, alternate=alternate)
        return await self.fetch_series(alternate, start_date, end_date)
