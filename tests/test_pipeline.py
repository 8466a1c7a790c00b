"""
Unit tests for the beta analysis pipeline.

Tests cover:
- Request validation
- Subject retry with the alternate exchange suffix
- Terminal outcomes (no market data, no subject data, insufficient data, timeout)
- Peer isolation (failed peers dropped or kept with an error)
- History persistence and report formatting
"""

import asyncio
from datetime import date, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from betascope.analysis import AnalysisHistoryStorage
from betascope.data.base_fetcher import FailureReason, FetchResult
from betascope.data.price_fetcher import PriceSeries, PriceSeriesFetcher
from betascope.data.profile_fetcher import CompanyProfile
from betascope.exceptions import (
    AnalysisHistoryError,
    AnalysisTimeoutError,
    DataValidationError,
    InsufficientDataPointsError,
    NoMarketDataError,
    NoSubjectDataError,
    TickerValidationError,
)
from betascope.peers.finder import PeerCandidate
from betascope.peers.scorer import SimilarityScorer
from betascope.peers.visualizer import format_analysis_report, generate_peer_table
from betascope.pipeline import (
    AnalysisRequest,
    BetaAnalysisPipeline,
    PipelineState,
)
from betascope.ticker_utils import Exchange


START = date(2024, 1, 1)
END = date(2024, 3, 1)

MARKET_RETURNS = [0.01, -0.005, 0.012, -0.02, 0.004, 0.008, -0.011, 0.015, -0.003, 0.006]


def series_from_returns(ticker, returns, first=100.0, start=START):
    closes = [first]
    for r in returns:
        closes.append(closes[-1] * (1 + r))
    return PriceSeries(
        ticker=ticker,
        points=tuple((start + timedelta(days=i), c) for i, c in enumerate(closes)),
    )


def scaled(ticker, factor):
    return series_from_returns(ticker, [factor * r for r in MARKET_RETURNS])


class FakePriceFetcher(PriceSeriesFetcher):
    """Serves series from a dict; missing tickers have no data."""

    def __init__(self, data, delay=0.0):
        super().__init__()
        self.data = data
        self.delay = delay
        self.requested = []

    async def fetch(self, identifier, start_date=None, end_date=None, **kwargs):
        self.requested.append(identifier)
        if self.delay:
            await asyncio.sleep(self.delay)
        value = self.data.get(identifier)
        if isinstance(value, Exception):
            raise value
        return value


def profile_fetcher(profile=None):
    fetcher = MagicMock()
    if profile is None:
        fetcher.fetch_profile = AsyncMock(
            return_value=FetchResult.fail("stub", "TCS.NS", FailureReason.NO_DATA)
        )
    else:
        fetcher.fetch_profile = AsyncMock(return_value=FetchResult.success(profile))
    return fetcher


def peer_finder(tickers=(), error=None):
    finder = MagicMock()
    if error:
        finder.resolve_peers = AsyncMock(side_effect=error)
    else:
        finder.resolve_peers = AsyncMock(return_value=[
            PeerCandidate(ticker=t, name=f"{t} Ltd", sector="Technology", source="test") for t in tickers
        ])
    return finder


def build_pipeline(prices, peers=(), **kwargs):
    kwargs.setdefault("profile_fetcher", profile_fetcher(
        CompanyProfile(ticker="TCS.NS", name="Tata Consultancy Services", sector="Technology",
                       industry="Information Technology Services")
    ))
    kwargs.setdefault("peer_finder", peer_finder(peers))
    kwargs.setdefault("scorer", SimilarityScorer(min_summary_length=200, keyword_set_size=5))
    kwargs.setdefault("top_peers", 5)
    return BetaAnalysisPipeline(price_fetcher=prices, **kwargs)


def request(ticker="TCS", exchange=Exchange.NSE):
    return AnalysisRequest.create(ticker, exchange, START, END)


class TestAnalysisRequest:
    """Tests for request validation."""

    def test_create_normalizes(self):
        req = AnalysisRequest.create(" tcs ", "nse", "2024-01-01", "2024-03-01")

        assert req.ticker == "TCS"
        assert req.exchange == Exchange.NSE
        assert req.start_date == START

    def test_start_must_precede_end(self):
        with pytest.raises(DataValidationError):
            AnalysisRequest.create("TCS", "NSE", "2024-03-01", "2024-01-01")

    def test_same_day_rejected(self):
        with pytest.raises(DataValidationError):
            AnalysisRequest.create("TCS", "NSE", START, START)

    def test_unknown_exchange(self):
        with pytest.raises(DataValidationError):
            AnalysisRequest.create("TCS", "NYSE", START, END)

    def test_bad_date(self):
        with pytest.raises(DataValidationError):
            AnalysisRequest.create("TCS", "NSE", "yesterday", END)

    @pytest.mark.parametrize("ticker", ["", "   ", "TCS$", "TC S"])
    def test_bad_ticker(self, ticker):
        with pytest.raises(TickerValidationError):
            AnalysisRequest.create(ticker, "NSE", START, END)


class TestPipelineSuccess:
    """Tests for completed analyses."""

    @pytest.mark.asyncio
    async def test_subject_beta_and_peers(self):
        prices = FakePriceFetcher({
            "^NSEI": scaled("^NSEI", 1.0),
            "TCS.NS": scaled("TCS.NS", 1.5),
            "INFY.NS": scaled("INFY.NS", 0.8),
            "WIPRO.NS": scaled("WIPRO.NS", 1.2),
        })
        pipeline = build_pipeline(prices, peers=["INFY.NS", "WIPRO.NS"])

        result = await pipeline.analyze(request())

        assert result.subject_ticker == "TCS.NS"
        assert result.market_index_ticker == "^NSEI"
        assert result.market_index_name == "NIFTY 50"
        assert result.beta == pytest.approx(1.5)
        assert result.correlation == pytest.approx(1.0)
        assert result.observations == len(MARKET_RETURNS)
        assert result.subject_name == "Tata Consultancy Services"
        assert {p.ticker: round(p.beta, 6) for p in result.peers} == {"INFY.NS": 0.8, "WIPRO.NS": 1.2}

    @pytest.mark.asyncio
    async def test_bse_uses_sensex(self):
        prices = FakePriceFetcher({
            "^BSESN": scaled("^BSESN", 1.0),
            "RELIANCE.BO": scaled("RELIANCE.BO", 0.9),
        })
        pipeline = build_pipeline(prices)

        result = await pipeline.analyze(request("RELIANCE", Exchange.BSE))

        assert result.market_index_name == "SENSEX"
        assert result.subject_ticker == "RELIANCE.BO"
        assert result.beta == pytest.approx(0.9)

    @pytest.mark.asyncio
    async def test_subject_retried_with_alternate_suffix(self):
        prices = FakePriceFetcher({
            "^NSEI": scaled("^NSEI", 1.0),
            "TCS.BO": scaled("TCS.BO", 1.1),
        })
        pipeline = build_pipeline(prices)

        result = await pipeline.analyze(request())

        assert result.subject_ticker == "TCS.BO"
        assert result.beta == pytest.approx(1.1)
        assert prices.requested.count("TCS.NS") == 1
        assert prices.requested.count("TCS.BO") == 1

    @pytest.mark.asyncio
    async def test_failed_peers_are_dropped(self):
        prices = FakePriceFetcher({
            "^NSEI": scaled("^NSEI", 1.0),
            "TCS.NS": scaled("TCS.NS", 1.5),
            "INFY.NS": scaled("INFY.NS", 0.8),
            "BROKEN.NS": ConnectionError("reset"),
            "FLAT.NS": series_from_returns("FLAT.NS", [], start=START + timedelta(days=5)),
        })
        pipeline = build_pipeline(prices, peers=["BROKEN.NS", "INFY.NS", "GONE.NS", "FLAT.NS"])

        result = await pipeline.analyze(request())

        assert [p.ticker for p in result.peers] == ["INFY.NS"]

    @pytest.mark.asyncio
    async def test_failed_peers_can_be_kept(self):
        prices = FakePriceFetcher({
            "^NSEI": scaled("^NSEI", 1.0),
            "TCS.NS": scaled("TCS.NS", 1.5),
            "INFY.NS": scaled("INFY.NS", 0.8),
        })
        pipeline = build_pipeline(prices, peers=["INFY.NS", "GONE.NS"], include_failed_peers=True)

        result = await pipeline.analyze(request())

        by_ticker = {p.ticker: p for p in result.peers}
        assert by_ticker["INFY.NS"].beta == pytest.approx(0.8)
        assert by_ticker["GONE.NS"].beta is None
        assert by_ticker["GONE.NS"].error == "Failed to fetch data"

    @pytest.mark.asyncio
    async def test_peer_resolution_failure_still_returns_subject_beta(self):
        prices = FakePriceFetcher({
            "^NSEI": scaled("^NSEI", 1.0),
            "TCS.NS": scaled("TCS.NS", 1.5),
        })
        pipeline = build_pipeline(prices, peer_finder=peer_finder(error=RuntimeError("provider down")))

        result = await pipeline.analyze(request())

        assert result.beta == pytest.approx(1.5)
        assert result.peers == ()

    @pytest.mark.asyncio
    async def test_missing_subject_profile_is_tolerated(self):
        prices = FakePriceFetcher({
            "^NSEI": scaled("^NSEI", 1.0),
            "TCS.NS": scaled("TCS.NS", 1.5),
        })
        finder = peer_finder()
        pipeline = build_pipeline(prices, profile_fetcher=profile_fetcher(None), peer_finder=finder)

        result = await pipeline.analyze(request())

        assert result.subject_name is None
        subject_profile = finder.resolve_peers.call_args[0][0]
        assert subject_profile.ticker == "TCS.NS"
        assert finder.resolve_peers.call_args[0][1] == ".NS"

    @pytest.mark.asyncio
    async def test_peers_limited_to_top_n(self):
        tickers = [f"P{i}.NS" for i in range(8)]
        data = {"^NSEI": scaled("^NSEI", 1.0), "TCS.NS": scaled("TCS.NS", 1.5)}
        data.update({t: scaled(t, 1.0) for t in tickers})
        pipeline = build_pipeline(FakePriceFetcher(data), peers=tickers, top_peers=5)

        result = await pipeline.analyze(request())

        assert [p.ticker for p in result.peers] == tickers[:5]

    @pytest.mark.asyncio
    async def test_to_dict(self):
        prices = FakePriceFetcher({
            "^NSEI": scaled("^NSEI", 1.0),
            "TCS.NS": scaled("TCS.NS", 1.5),
            "INFY.NS": scaled("INFY.NS", 0.8),
        })
        result = await build_pipeline(prices, peers=["INFY.NS"]).analyze(request())

        data = result.to_dict()

        assert data["ticker"] == "TCS.NS"
        assert data["exchange"] == "NSE"
        assert data["start_date"] == "2024-01-01"
        assert data["peers"][0]["ticker"] == "INFY.NS"
        assert data["peers"][0]["confidence_tier"] in ("High", "Medium", "Low")


class TestPipelineFailures:
    """Tests for terminal outcomes."""

    @pytest.mark.asyncio
    async def test_no_market_data(self):
        prices = FakePriceFetcher({"TCS.NS": scaled("TCS.NS", 1.5)})

        with pytest.raises(NoMarketDataError) as exc_info:
            await build_pipeline(prices).analyze(request())

        assert exc_info.value.state == PipelineState.MARKET_DATA_MISSING.value

    @pytest.mark.asyncio
    async def test_no_subject_data_on_either_exchange(self):
        prices = FakePriceFetcher({"^NSEI": scaled("^NSEI", 1.0)})

        with pytest.raises(NoSubjectDataError) as exc_info:
            await build_pipeline(prices).analyze(request())

        assert exc_info.value.state == PipelineState.SUBJECT_DATA_MISSING.value
        assert exc_info.value.details["identifiers_tried"] == ["TCS.NS", "TCS.BO"]
        assert prices.requested.count("TCS.BO") == 1

    @pytest.mark.asyncio
    async def test_insufficient_overlap(self):
        prices = FakePriceFetcher({
            "^NSEI": scaled("^NSEI", 1.0),
            "TCS.NS": series_from_returns("TCS.NS", [0.01, 0.02, 0.03], start=START + timedelta(days=10)),
        })

        with pytest.raises(InsufficientDataPointsError) as exc_info:
            await build_pipeline(prices).analyze(request())

        assert exc_info.value.state == PipelineState.INSUFFICIENT_DATA.value
        assert exc_info.value.details["aligned_points"] == 1

    @pytest.mark.asyncio
    async def test_flat_benchmark_is_insufficient(self):
        prices = FakePriceFetcher({
            "^NSEI": series_from_returns("^NSEI", [0.0] * len(MARKET_RETURNS)),
            "TCS.NS": scaled("TCS.NS", 1.5),
        })

        with pytest.raises(InsufficientDataPointsError):
            await build_pipeline(prices).analyze(request())

    @pytest.mark.asyncio
    async def test_deadline(self):
        prices = FakePriceFetcher({"^NSEI": scaled("^NSEI", 1.0)}, delay=1.0)

        with pytest.raises(AnalysisTimeoutError):
            await build_pipeline(prices, request_deadline=0.05).analyze(request())


class TestPipelineHistory:
    """Tests for history persistence after assembly."""

    PRICES = {
        "^NSEI": scaled("^NSEI", 1.0),
        "TCS.NS": scaled("TCS.NS", 1.5),
        "INFY.NS": scaled("INFY.NS", 0.8),
    }

    @pytest.mark.asyncio
    async def test_result_is_saved(self):
        storage = AnalysisHistoryStorage(":memory:")
        pipeline = build_pipeline(FakePriceFetcher(self.PRICES), peers=["INFY.NS"], history=storage)

        await pipeline.analyze(request())

        records = storage.get_recent_results()
        assert len(records) == 1
        assert records[0].ticker == "TCS.NS"
        assert records[0].beta == pytest.approx(1.5)
        assert records[0].peers[0]["ticker"] == "INFY.NS"
        assert records[0].peers[0]["beta"] == pytest.approx(0.8)

    @pytest.mark.asyncio
    async def test_storage_failure_does_not_fail_request(self):
        storage = MagicMock()
        storage.save_result = MagicMock(side_effect=AnalysisHistoryError("disk full"))
        pipeline = build_pipeline(FakePriceFetcher(self.PRICES), history=storage)

        result = await pipeline.analyze(request())

        assert result.beta == pytest.approx(1.5)
        storage.save_result.assert_called_once()


class TestReport:
    """Tests for report formatting."""

    @pytest.mark.asyncio
    async def test_peer_table_and_report(self):
        prices = FakePriceFetcher({
            "^NSEI": scaled("^NSEI", 1.0),
            "TCS.NS": scaled("TCS.NS", 1.5),
            "INFY.NS": scaled("INFY.NS", 0.8),
        })
        result = await build_pipeline(prices, peers=["INFY.NS"]).analyze(request())

        table = generate_peer_table(result)
        report = format_analysis_report(result)

        assert table["headers"][0] == "Ticker"
        assert table["rows"][0][0] == "INFY.NS"
        assert table["rows"][0][3] == "0.80"
        assert table["focus_beta"] == "1.50"
        assert "# Beta Report: Tata Consultancy Services (TCS.NS)" in report
        assert "NIFTY 50 (^NSEI)" in report
        assert "| INFY.NS |" in report
        assert "aggressive" in report

    @pytest.mark.asyncio
    async def test_report_without_peers(self):
        prices = FakePriceFetcher({"^NSEI": scaled("^NSEI", 1.0), "TCS.NS": scaled("TCS.NS", 0.5)})
        result = await build_pipeline(prices).analyze(request())

        report = format_analysis_report(result)

        assert "No comparable companies" in report
        assert "defensive" in report
