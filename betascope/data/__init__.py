"""
Data Fetching Module

Collaborator fetchers for the beta and peer pipeline. Every fetcher returns a
FetchResult from `fetch_with_timeout()`; none raises for provider failures.

Module Structure:
- base_fetcher.py: BaseFetcher, FetchResult, FetchFailure, FailureReason
- http_fetcher.py: aiohttp session handling shared by HTTP collaborators
- price_fetcher.py: PriceSeries and the yfinance history fetcher
- profile_fetcher.py: CompanyProfile lookup (sector, industry, summary)
- recommendation_fetcher.py: Yahoo recommendation-graph lookup
- screener_fetcher.py: screener.in peer-table scraper

Usage:
    from betascope.data import PriceSeriesFetcher

    result = await PriceSeriesFetcher().fetch_series("TCS.NS", "2020-01-01", "2025-01-01")
    if result.ok:
        series = result.value
"""

from betascope.data.base_fetcher import (
    BaseFetcher,
    FailureReason,
    FetchFailure,
    FetchResult,
    PER_SOURCE_TIMEOUT,
)
from betascope.data.http_fetcher import HttpFetcher
from betascope.data.price_fetcher import PriceSeries, PriceSeriesFetcher, to_date
from betascope.data.profile_fetcher import CompanyProfile, CompanyProfileFetcher
from betascope.data.recommendation_fetcher import RecommendationFetcher
from betascope.data.screener_fetcher import ScreenerPeerFetcher, parse_peer_table

__all__ = [
    'BaseFetcher',
    'FailureReason',
    'FetchFailure',
    'FetchResult',
    'HttpFetcher',
    'PriceSeries',
    'PriceSeriesFetcher',
    'CompanyProfile',
    'CompanyProfileFetcher',
    'RecommendationFetcher',
    'ScreenerPeerFetcher',
    'parse_peer_table',
    'to_date',
    'PER_SOURCE_TIMEOUT',
]
