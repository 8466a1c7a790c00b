"""
PeerFinder - Discover candidate peer companies for a subject ticker.

Discovery runs an ordered list of strategies through a single loop that stops
as soon as enough candidates are found:

1. IndustryMatchStrategy: recommendation-graph tickers in the same industry
2. SectorMatchStrategy: the same tickers, sector match only
3. ScreenerTableStrategy: peer table scraped from the company's profile page

If the loop ends short, the remaining recommendation-graph tickers pad the
list regardless of classification. Every external failure counts as zero
candidates from that source.
"""

import structlog
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass
from typing import List, Optional

from betascope.config import config
from betascope.data.profile_fetcher import CompanyProfile, CompanyProfileFetcher
from betascope.data.recommendation_fetcher import RecommendationFetcher
from betascope.data.screener_fetcher import ScreenerPeerFetcher
from betascope.ticker_utils import base_symbol, normalize_symbol, with_suffix

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PeerCandidate:
    """
    A company that may be comparable to the subject.

    Only `ticker` is guaranteed; classification and description are None
    when the profile lookup failed or the provider had no value.
    """

    ticker: str
    name: Optional[str] = None
    sector: Optional[str] = None
    industry: Optional[str] = None
    market_cap: Optional[float] = None
    business_summary: Optional[str] = None
    source: str = "unknown"

    @property
    def key(self) -> str:
        """Dedup key: case-insensitive ticker."""
        return normalize_symbol(self.ticker)

    @classmethod
    def from_profile(cls, profile: CompanyProfile, source: str) -> "PeerCandidate":
        return cls(
            ticker=normalize_symbol(profile.ticker),
            name=profile.name,
            sector=profile.sector,
            industry=profile.industry,
            market_cap=profile.market_cap,
            business_summary=profile.business_summary,
            source=source,
        )


def same_label(left: Optional[str], right: Optional[str]) -> bool:
    return bool(left and right and left.strip().lower() == right.strip().lower())


class ResolutionContext:
    """
    Per-resolution state shared by strategies.

    The recommendation pool (tickers plus their profiles) is fetched at most
    once and reused by every tier that needs it.
    """

    def __init__(
        self,
        subject: CompanyProfile,
        suffix: str,
        profile_fetcher: CompanyProfileFetcher,
        recommendation_fetcher: RecommendationFetcher,
        screener_fetcher: ScreenerPeerFetcher,
    ):
        self.subject = subject
        self.suffix = suffix
        self.profile_fetcher = profile_fetcher
        self.recommendation_fetcher = recommendation_fetcher
        self.screener_fetcher = screener_fetcher
        self._pool: Optional[List[PeerCandidate]] = None

    def is_self(self, ticker: str) -> bool:
        return base_symbol(ticker) == base_symbol(self.subject.ticker)

    async def recommendation_pool(self) -> List[PeerCandidate]:
        if self._pool is not None:
            return self._pool

        result = await self.recommendation_fetcher.fetch_with_timeout(self.subject.ticker)
        if not result.ok:
            logger.info("recommendation_pool_empty", ticker=self.subject.ticker, reason=result.failure.describe())
            self._pool = []
            return self._pool

        tickers = [t for t in result.value if not self.is_self(t)]
        self._pool = await self.candidates_for(tickers, source="recommendations")
        return self._pool

    async def candidates_for(self, tickers: List[str], source: str) -> List[PeerCandidate]:
        """Attach profiles to tickers; a failed profile leaves a bare candidate."""
        profiles = await self.profile_fetcher.fetch_many(tickers)
        candidates = []
        for ticker in tickers:
            profile = profiles.get(ticker)
            if profile is not None:
                candidates.append(PeerCandidate.from_profile(profile, source))
            else:
                candidates.append(PeerCandidate(ticker=normalize_symbol(ticker), source=source))
        return candidates


class PeerStrategy(ABC):
    """One discovery tier."""

    name = "strategy"

    @abstractmethod
    async def discover(self, context: ResolutionContext) -> List[PeerCandidate]:
        pass


class IndustryMatchStrategy(PeerStrategy):
    name = "industry"

    async def discover(self, context: ResolutionContext) -> List[PeerCandidate]:
        if not context.subject.industry:
            return []
        pool = await context.recommendation_pool()
        return [c for c in pool if same_label(c.industry, context.subject.industry)]


class SectorMatchStrategy(PeerStrategy):
    name = "sector"

    async def discover(self, context: ResolutionContext) -> List[PeerCandidate]:
        if not context.subject.sector:
            return []
        pool = await context.recommendation_pool()
        return [c for c in pool if same_label(c.sector, context.subject.sector)]


class ScreenerTableStrategy(PeerStrategy):
    name = "screener"

    async def discover(self, context: ResolutionContext) -> List[PeerCandidate]:
        result = await context.screener_fetcher.fetch_with_timeout(context.subject.ticker)
        if not result.ok:
            logger.info("screener_tier_empty", ticker=context.subject.ticker, reason=result.failure.describe())
            return []

        tickers = [with_suffix(symbol, context.suffix) for symbol in result.value]
        tickers = [t for t in tickers if not context.is_self(t)]
        return await context.candidates_for(tickers, source="screener")


def default_strategies() -> List[PeerStrategy]:
    return [IndustryMatchStrategy(), SectorMatchStrategy(), ScreenerTableStrategy()]


class PeerFinder:
    """
    Find peer candidates for a subject company.

    Example:
        finder = PeerFinder()
        candidates = await finder.resolve_peers(subject_profile, suffix=".NS")
        # Returns: [PeerCandidate(ticker="INFY.NS", ...), ...]
    """

    def __init__(
        self,
        profile_fetcher: Optional[CompanyProfileFetcher] = None,
        recommendation_fetcher: Optional[RecommendationFetcher] = None,
        screener_fetcher: Optional[ScreenerPeerFetcher] = None,
        strategies: Optional[List[PeerStrategy]] = None,
        min_candidates: Optional[int] = None,
        max_candidates: Optional[int] = None,
    ):
        """
        Initialize PeerFinder.

        Args:
            profile_fetcher: Profile lookup (per-request cache)
            recommendation_fetcher: Recommendation-graph lookup
            screener_fetcher: Peer-table scraper
            strategies: Ordered discovery tiers; defaults to industry, sector, screener
            min_candidates: Stop the tier loop once this many candidates exist
            max_candidates: Cap on the returned list
        """
        self.profile_fetcher = profile_fetcher or CompanyProfileFetcher()
        self.recommendation_fetcher = recommendation_fetcher or RecommendationFetcher()
        self.screener_fetcher = screener_fetcher or ScreenerPeerFetcher()
        self.strategies = strategies if strategies is not None else default_strategies()
        self.min_candidates = min_candidates or config.min_peer_candidates
        self.max_candidates = max_candidates or config.max_peer_candidates

    async def resolve_peers(self, subject: CompanyProfile, suffix: str) -> List[PeerCandidate]:
        """
        Resolve peer candidates for a subject.

        Args:
            subject: Profile of the subject company (may lack classification)
            suffix: Exchange suffix applied to scraped identifiers

        Returns:
            Deduplicated candidates in discovery order; may be empty
        """
        context = ResolutionContext(
            subject=subject,
            suffix=suffix,
            profile_fetcher=self.profile_fetcher,
            recommendation_fetcher=self.recommendation_fetcher,
            screener_fetcher=self.screener_fetcher,
        )
        found: "OrderedDict[str, PeerCandidate]" = OrderedDict()
        tiers_run: List[str] = []

        logger.info("resolving_peers", ticker=subject.ticker, industry=subject.industry, sector=subject.sector)

        for strategy in self.strategies:
            tiers_run.append(strategy.name)
            try:
                candidates = await strategy.discover(context)
            except Exception as e:
                logger.warning(
                    "peer_tier_failed",
                    ticker=subject.ticker,
                    tier=strategy.name,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                candidates = []

            added = self._merge(found, candidates, context)
            logger.info("peer_tier_complete", ticker=subject.ticker, tier=strategy.name, added=added, total=len(found))

            if len(found) >= self.min_candidates:
                break

        if len(found) < self.min_candidates:
            added = await self._unfiltered_fallback(found, context)
            tiers_run.append("unfiltered")
            logger.info("peer_tier_complete", ticker=subject.ticker, tier="unfiltered", added=added, total=len(found))

        peers = list(found.values())[: self.max_candidates]
        logger.info(
            "peers_resolved",
            ticker=subject.ticker,
            tiers=tiers_run,
            peers_returned=len(peers),
        )
        return peers

    async def _unfiltered_fallback(
        self,
        found: "OrderedDict[str, PeerCandidate]",
        context: ResolutionContext,
    ) -> int:
        try:
            pool = await context.recommendation_pool()
        except Exception as e:
            logger.warning("unfiltered_fallback_failed", ticker=context.subject.ticker, error=str(e))
            return 0
        return self._merge(found, pool, context)

    def _merge(
        self,
        found: "OrderedDict[str, PeerCandidate]",
        candidates: List[PeerCandidate],
        context: ResolutionContext,
    ) -> int:
        """Add unseen, non-self candidates up to max_candidates; return the count added."""
        added = 0
        for candidate in candidates:
            if len(found) >= self.max_candidates:
                break
            key = candidate.key
            if not key or key in found or context.is_self(key):
                continue
            found[key] = candidate
            added += 1
        return added

