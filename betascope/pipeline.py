"""
Beta analysis pipeline.

Sequences one request through:

    FETCH_SUBJECT -> COMPUTE_SUBJECT_BETA -> RESOLVE_PEERS -> SCORE_PEERS
    -> COMPUTE_PEER_BETAS -> ASSEMBLE -> DONE

Subject and benchmark histories are fetched concurrently. A subject miss is
retried once with the alternate exchange suffix. Subject, benchmark and
subject-beta failures end the request; every peer failure is isolated to that
peer.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import aiohttp
import structlog

from betascope.analytics.beta import BetaResult, align_prices, compute_beta
from betascope.config import config, llm_available
from betascope.data.http_fetcher import DEFAULT_HEADERS
from betascope.data.price_fetcher import DateLike, PriceSeries, PriceSeriesFetcher, to_date
from betascope.data.profile_fetcher import CompanyProfile, CompanyProfileFetcher
from betascope.data.recommendation_fetcher import RecommendationFetcher
from betascope.data.screener_fetcher import ScreenerPeerFetcher
from betascope.exceptions import (
    AnalysisHistoryError,
    AnalysisTimeoutError,
    ConfigurationError,
    DataValidationError,
    InsufficientDataPointsError,
    NoMarketDataError,
    NoSubjectDataError,
)
from betascope.peers.finder import PeerFinder
from betascope.peers.keywords import EmbeddingSimilarity, KeywordExtractor
from betascope.peers.scorer import ScoredPeer, SimilarityScorer
from betascope.ticker_utils import (
    Exchange,
    get_market_index,
    get_suffix,
    resolve_identifiers,
    validate_ticker,
)

logger = structlog.get_logger(__name__)


class PipelineState(str, Enum):
    FETCH_SUBJECT = "FetchSubject"
    COMPUTE_SUBJECT_BETA = "ComputeSubjectBeta"
    RESOLVE_PEERS = "ResolvePeers"
    SCORE_PEERS = "ScorePeers"
    COMPUTE_PEER_BETAS = "ComputePeerBetas"
    ASSEMBLE = "Assemble"
    DONE = "Done"
    MARKET_DATA_MISSING = "MarketDataMissing"
    SUBJECT_DATA_MISSING = "SubjectDataMissing"
    INSUFFICIENT_DATA = "InsufficientData"


@dataclass(frozen=True)
class AnalysisRequest:
    """Input from the CLI/HTTP layer."""

    ticker: str
    exchange: Exchange
    start_date: date
    end_date: date

    @classmethod
    def create(
        cls,
        ticker: str,
        exchange: Any,
        start_date: DateLike,
        end_date: DateLike,
    ) -> "AnalysisRequest":
        """
        Validate and normalize raw inputs.

        Raises:
            TickerValidationError: If the ticker is empty or malformed
            DataValidationError: If the exchange or date range is invalid
        """
        try:
            start, end = to_date(start_date), to_date(end_date)
        except ValueError as e:
            raise DataValidationError(
                "Dates must be ISO formatted (YYYY-MM-DD)",
                field="date_range",
                value=f"{start_date}..{end_date}",
                cause=e,
            )
        if start >= end:
            raise DataValidationError(
                "start_date must be before end_date",
                field="date_range",
                value=f"{start}..{end}",
                expected="start_date < end_date",
            )
        return cls(
            ticker=validate_ticker(ticker),
            exchange=Exchange.parse(exchange),
            start_date=start,
            end_date=end,
        )


@dataclass(frozen=True)
class PeerBeta:
    """A ranked peer with its beta; `result` is None when the beta failed."""

    peer: ScoredPeer
    result: Optional[BetaResult] = None
    error: Optional[str] = None

    @property
    def ticker(self) -> str:
        return self.peer.ticker

    @property
    def beta(self) -> Optional[float]:
        return self.result.beta if self.result else None

    def to_dict(self) -> Dict[str, Any]:
        candidate = self.peer.candidate
        return {
            "ticker": candidate.ticker,
            "name": candidate.name or candidate.ticker,
            "sector": candidate.sector,
            "industry": candidate.industry,
            "beta": self.beta,
            "similarity_score": self.peer.similarity_score,
            "confidence_tier": self.peer.confidence_tier.value,
            "match_basis": self.peer.match_basis.value,
            "keywords": sorted(self.peer.keywords),
            "source": candidate.source,
            "error": self.error,
        }


@dataclass(frozen=True)
class AnalysisResult:
    """Terminal output of the pipeline."""

    subject_ticker: str
    exchange: Exchange
    market_index_ticker: str
    market_index_name: str
    start_date: date
    end_date: date
    beta: float
    alpha: Optional[float]
    correlation: Optional[float]
    r_squared: Optional[float]
    volatility: Optional[float]
    observations: int
    peers: Tuple[PeerBeta, ...] = ()
    subject_name: Optional[str] = None
    sector: Optional[str] = None
    industry: Optional[str] = None
    generated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ticker": self.subject_ticker,
            "exchange": self.exchange.value,
            "market_index": self.market_index_name,
            "market_index_ticker": self.market_index_ticker,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "beta": self.beta,
            "alpha": self.alpha,
            "correlation": self.correlation,
            "r_squared": self.r_squared,
            "volatility": self.volatility,
            "observations": self.observations,
            "subject_name": self.subject_name,
            "sector": self.sector,
            "industry": self.industry,
            "peers": [p.to_dict() for p in self.peers],
            "generated_at": self.generated_at.isoformat(),
        }


class _RunTrace:
    """State transitions of one request, for logs and failure context."""

    def __init__(self, ticker: str):
        self.ticker = ticker
        self.states: List[PipelineState] = []

    def enter(self, state: PipelineState) -> PipelineState:
        self.states.append(state)
        logger.info("pipeline_state", ticker=self.ticker, state=state.value)
        return state


class BetaAnalysisPipeline:
    """
    Orchestrates price fetches, beta computation and peer ranking.

    Collaborators can be injected for testing; otherwise the per-request ones
    (profile cache, HTTP fetchers, keyword cache) are built fresh for every
    call to `analyze()`.

    Example:
        pipeline = BetaAnalysisPipeline()
        request = AnalysisRequest.create("TCS", "NSE", "2020-01-01", "2025-01-01")
        result = await pipeline.analyze(request)
        print(result.beta, [p.ticker for p in result.peers])
    """

    def __init__(
        self,
        price_fetcher: Optional[PriceSeriesFetcher] = None,
        profile_fetcher: Optional[CompanyProfileFetcher] = None,
        peer_finder: Optional[PeerFinder] = None,
        scorer: Optional[SimilarityScorer] = None,
        history=None,
        llm=None,
        embeddings=None,
        top_peers: Optional[int] = None,
        request_deadline: Optional[float] = None,
        include_failed_peers: bool = False,
    ):
        """
        Initialize the pipeline.

        Args:
            price_fetcher: Historical close lookup
            profile_fetcher: Company profile lookup (built per request if None)
            peer_finder: Peer resolver (built per request if None)
            scorer: Similarity scorer (built per request if None)
            history: Optional AnalysisHistoryStorage receiving completed results
            llm: Chat model for keyword extraction (created from config if None)
            embeddings: Embedding model for optional similarity blending
            top_peers: Number of peers kept after ranking
            request_deadline: Overall deadline in seconds
            include_failed_peers: Keep peers whose beta failed (beta=None, error set)
        """
        self.price_fetcher = price_fetcher or PriceSeriesFetcher()
        self._profile_fetcher = profile_fetcher
        self._peer_finder = peer_finder
        self._scorer = scorer
        self.history = history
        self._llm = llm
        self._embeddings = embeddings
        self.top_peers = top_peers or config.top_peers
        self.request_deadline = request_deadline or config.request_deadline_seconds
        self.include_failed_peers = include_failed_peers

    async def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        """
        Run one analysis request.

        Raises:
            NoMarketDataError: Benchmark index history unavailable
            NoSubjectDataError: Subject unavailable under both exchange suffixes
            InsufficientDataPointsError: Too few aligned points or a flat benchmark
            AnalysisTimeoutError: Request exceeded its deadline
        """
        try:
            return await asyncio.wait_for(self._run(request), timeout=self.request_deadline)
        except asyncio.TimeoutError:
            raise AnalysisTimeoutError(
                f"Analysis of {request.ticker} exceeded {self.request_deadline}s",
                ticker=request.ticker,
            )

    async def _run(self, request: AnalysisRequest) -> AnalysisResult:
        trace = _RunTrace(request.ticker)
        primary, alternate = resolve_identifiers(request.ticker, request.exchange)
        index_ticker, index_name = get_market_index(request.exchange)
        start, end = request.start_date, request.end_date

        # FetchSubject: benchmark and subject concurrently
        trace.enter(PipelineState.FETCH_SUBJECT)
        market_result, subject_result = await asyncio.gather(
            self.price_fetcher.fetch_series(index_ticker, start, end),
            self.price_fetcher.fetch_with_fallback(primary, alternate, start, end),
        )

        if not market_result.ok:
            state = trace.enter(PipelineState.MARKET_DATA_MISSING)
            raise NoMarketDataError(
                f"Failed to fetch market index data for {index_name} ({start} to {end})",
                ticker=index_ticker,
                state=state.value,
                details={"reason": market_result.failure.describe()},
            )
        market_series: PriceSeries = market_result.value

        if not subject_result.ok:
            state = trace.enter(PipelineState.SUBJECT_DATA_MISSING)
            raise NoSubjectDataError(
                f"Failed to fetch data for {primary}. Check ticker or date range ({start} to {end}).",
                ticker=primary,
                identifiers_tried=[primary, alternate],
                state=state.value,
            )
        subject_series: PriceSeries = subject_result.value
        subject_ticker = subject_series.ticker

        # ComputeSubjectBeta
        trace.enter(PipelineState.COMPUTE_SUBJECT_BETA)
        subject_beta = compute_beta(subject_series, market_series)
        if subject_beta is None:
            aligned, _ = align_prices(subject_series, market_series)
            state = trace.enter(PipelineState.INSUFFICIENT_DATA)
            raise InsufficientDataPointsError(
                "Insufficient data points to calculate beta",
                ticker=subject_ticker,
                aligned_points=len(aligned),
                state=state.value,
            )
        logger.info(
            "subject_beta_computed",
            ticker=subject_ticker,
            beta=round(subject_beta.beta, 4),
            observations=subject_beta.observations,
        )

        profile_fetcher, peer_finder, scorer, closers = self._request_components()
        try:
            profile_result = await profile_fetcher.fetch_profile(subject_ticker)
            subject_profile = profile_result.unwrap_or(CompanyProfile.empty(subject_ticker))

            trace.enter(PipelineState.RESOLVE_PEERS)
            candidates = await self._resolve_peers(peer_finder, subject_profile, request.exchange)

            trace.enter(PipelineState.SCORE_PEERS)
            ranked = await self._score_peers(scorer, subject_profile, candidates)
        finally:
            for close in closers:
                await close()

        trace.enter(PipelineState.COMPUTE_PEER_BETAS)
        peer_betas = await asyncio.gather(
            *(self._compute_peer_beta(peer, market_series, start, end) for peer in ranked)
        )
        if not self.include_failed_peers:
            peer_betas = [p for p in peer_betas if p.result is not None]

        trace.enter(PipelineState.ASSEMBLE)
        result = AnalysisResult(
            subject_ticker=subject_ticker,
            exchange=request.exchange,
            market_index_ticker=index_ticker,
            market_index_name=index_name,
            start_date=start,
            end_date=end,
            beta=subject_beta.beta,
            alpha=subject_beta.alpha,
            correlation=subject_beta.correlation,
            r_squared=subject_beta.r_squared,
            volatility=subject_beta.volatility,
            observations=subject_beta.observations,
            peers=tuple(peer_betas),
            subject_name=subject_profile.name,
            sector=subject_profile.sector,
            industry=subject_profile.industry,
        )
        await self._persist(result)

        trace.enter(PipelineState.DONE)
        logger.info(
            "analysis_complete",
            ticker=subject_ticker,
            beta=round(result.beta, 4),
            peers=[p.ticker for p in result.peers],
        )
        return result

    def _request_components(self):
        """Build per-request collaborators unless they were injected."""
        closers = []
        profile_fetcher = self._profile_fetcher or CompanyProfileFetcher()

        peer_finder = self._peer_finder
        if peer_finder is None:
            session = aiohttp.ClientSession(
                headers=DEFAULT_HEADERS,
                timeout=aiohttp.ClientTimeout(total=config.fetch_timeout),
            )
            closers.append(session.close)
            recommendation_fetcher = RecommendationFetcher(session=session)
            screener_fetcher = ScreenerPeerFetcher(session=session)
            peer_finder = PeerFinder(
                profile_fetcher=profile_fetcher,
                recommendation_fetcher=recommendation_fetcher,
                screener_fetcher=screener_fetcher,
            )

        scorer = self._scorer or SimilarityScorer(
            keyword_extractor=self._keyword_extractor(),
            embedding_similarity=self._embedding_similarity(),
        )
        return profile_fetcher, peer_finder, scorer, closers

    def _keyword_extractor(self) -> Optional[KeywordExtractor]:
        llm = self._llm
        if llm is None and config.enable_keyword_llm and llm_available():
            from betascope.llms import create_keyword_llm
            try:
                llm = self._llm = create_keyword_llm()
            except ConfigurationError as e:
                logger.warning("keyword_llm_unavailable", error=str(e))
        return KeywordExtractor(llm) if llm is not None else None

    def _embedding_similarity(self) -> Optional[EmbeddingSimilarity]:
        embeddings = self._embeddings
        if embeddings is None and config.enable_embeddings and llm_available():
            from betascope.llms import create_embeddings
            try:
                embeddings = self._embeddings = create_embeddings()
            except ConfigurationError as e:
                logger.warning("embeddings_unavailable", error=str(e))
        return EmbeddingSimilarity(embeddings) if embeddings is not None else None

    async def _resolve_peers(self, finder: PeerFinder, subject: CompanyProfile, exchange: Exchange):
        try:
            return await finder.resolve_peers(subject, get_suffix(exchange))
        except Exception as e:
            logger.warning(
                "peer_resolution_failed",
                ticker=subject.ticker,
                error_type=type(e).__name__,
                error=str(e),
            )
            return []

    async def _score_peers(self, scorer: SimilarityScorer, subject: CompanyProfile, candidates) -> List[ScoredPeer]:
        try:
            return await scorer.rank(subject, candidates, top_n=self.top_peers)
        except Exception as e:
            logger.warning(
                "peer_scoring_failed",
                ticker=subject.ticker,
                error_type=type(e).__name__,
                error=str(e),
            )
            return []

    async def _compute_peer_beta(
        self,
        peer: ScoredPeer,
        market_series: PriceSeries,
        start: date,
        end: date,
    ) -> PeerBeta:
        """Fetch one peer and compute its beta; failures stay inside the PeerBeta."""
        try:
            fetched = await self.price_fetcher.fetch_series(peer.ticker, start, end)
            if not fetched.ok:
                logger.warning("peer_fetch_failed", ticker=peer.ticker, reason=fetched.failure.describe())
                return PeerBeta(peer=peer, error="Failed to fetch data")

            result = compute_beta(fetched.value, market_series)
            if result is None:
                logger.warning("peer_beta_insufficient_data", ticker=peer.ticker)
                return PeerBeta(peer=peer, error="Insufficient data points")
            return PeerBeta(peer=peer, result=result)
        except Exception as e:
            logger.warning(
                "peer_beta_failed",
                ticker=peer.ticker,
                error_type=type(e).__name__,
                error=str(e),
            )
            return PeerBeta(peer=peer, error=str(e))

    async def _persist(self, result: AnalysisResult) -> None:
        if self.history is None:
            return
        try:
            await asyncio.to_thread(self.history.save_result, result)
        except AnalysisHistoryError as e:
            logger.warning("history_save_failed", ticker=result.subject_ticker, error=str(e))


async def analyze_ticker(
    ticker: str,
    exchange: Any = Exchange.NSE,
    start_date: DateLike = "2020-01-01",
    end_date: Optional[DateLike] = None,
    **pipeline_kwargs: Any,
) -> AnalysisResult:
    """
    Convenience wrapper: validate inputs and run a fresh pipeline.

    Example:
        result = await analyze_ticker("INFY", "NSE", "2021-01-01", "2026-01-01")
    """
    request = AnalysisRequest.create(ticker, exchange, start_date, end_date or date.today())
    return await BetaAnalysisPipeline(**pipeline_kwargs).analyze(request)
