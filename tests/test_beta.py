"""
Unit tests for return alignment and beta statistics.

Tests cover:
- Date alignment and exclusion of missing or non-positive closes
- Simple daily returns
- Population beta, alpha, correlation, R-squared and volatility
- Degenerate inputs (too few points, flat benchmark, flat subject)
"""

import math
from datetime import date, timedelta

import numpy as np
import pandas as pd
import pytest

from betascope.analytics.beta import (
    TRADING_DAYS_PER_YEAR,
    align_prices,
    align_returns,
    beta_from_returns,
    compute_beta,
    compute_returns,
)
from betascope.data.price_fetcher import PriceSeries


START = date(2024, 1, 1)


def make_series(ticker, closes, start=START):
    """Build a PriceSeries with one point per calendar day."""
    return PriceSeries(
        ticker=ticker,
        points=tuple((start + timedelta(days=i), c) for i, c in enumerate(closes)),
    )


def prices_from_returns(returns, first=100.0):
    prices = [first]
    for r in returns:
        prices.append(prices[-1] * (1 + r))
    return prices


class TestPriceSeries:
    """Tests for building series from provider frames."""

    def test_from_history_sorts_and_cleans(self):
        index = pd.to_datetime(["2024-01-03", "2024-01-01", "2024-01-02"])
        frame = pd.DataFrame({"Close": [103.0, 101.0, float("nan")]}, index=index)

        series = PriceSeries.from_history("TCS.NS", frame)

        assert series.dates == (date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3))
        assert series.closes == (101.0, None, 103.0)

    def test_from_history_empty_frame(self):
        series = PriceSeries.from_history("TCS.NS", pd.DataFrame())

        assert len(series) == 0

    def test_from_history_without_close_column(self):
        frame = pd.DataFrame({"Open": [1.0]}, index=pd.to_datetime(["2024-01-01"]))

        assert len(PriceSeries.from_history("TCS.NS", frame)) == 0


class TestAlignment:
    """Tests for date alignment."""

    def test_keeps_only_common_dates(self):
        subject = make_series("A", [10, 11, 12, 13, 14])
        benchmark = PriceSeries(
            ticker="^NSEI",
            points=tuple(
                (START + timedelta(days=i), c)
                for i, c in [(0, 100), (1, 101), (3, 103), (4, 104)]
            ),
        )

        subject_closes, benchmark_closes = align_prices(subject, benchmark)

        assert subject_closes == [10, 11, 13, 14]
        assert benchmark_closes == [100, 101, 103, 104]

    def test_excludes_zero_negative_and_missing_closes(self):
        subject = make_series("A", [10, 0, 12, None, -5, 15])
        benchmark = make_series("^NSEI", [100, 101, 102, 103, 104, float("nan")])

        subject_closes, benchmark_closes = align_prices(subject, benchmark)

        assert subject_closes == [10, 12]
        assert benchmark_closes == [100, 102]

    def test_different_lengths_align(self):
        subject = make_series("A", [10, 11, 12])
        benchmark = make_series("^NSEI", [100, 101, 102, 103, 104, 105])

        pair = align_returns(subject, benchmark)

        assert pair.aligned_points == 3
        assert len(pair) == 2
        assert len(pair.subject_returns) == len(pair.benchmark_returns)

    def test_no_overlap(self):
        subject = make_series("A", [10, 11, 12])
        benchmark = make_series("^NSEI", [100, 101, 102], start=START + timedelta(days=30))

        pair = align_returns(subject, benchmark)

        assert pair.aligned_points == 0
        assert len(pair) == 0


class TestComputeReturns:
    """Tests for simple daily returns."""

    def test_simple_returns(self):
        assert compute_returns([100, 110, 99]) == pytest.approx([0.1, -0.1])

    def test_single_price_has_no_returns(self):
        assert compute_returns([100]) == []
        assert compute_returns([]) == []


class TestBetaFromReturns:
    """Tests for regression statistics on return sequences."""

    def test_hand_computed_fixture(self):
        """
        m = [0.01, -0.02, 0.03, 0.00], s = [0.02, -0.01, 0.01, 0.02]
        cov = 0.000125, var(m) = 0.000325, var(s) = 0.00015 (population)
        """
        benchmark = [0.01, -0.02, 0.03, 0.00]
        subject = [0.02, -0.01, 0.01, 0.02]

        result = beta_from_returns(subject, benchmark)

        assert result is not None
        assert result.beta == pytest.approx(5 / 13)
        assert result.alpha == pytest.approx(0.01 - (5 / 13) * 0.005)
        expected_corr = 0.000125 / math.sqrt(0.00015 * 0.000325)
        assert result.correlation == pytest.approx(expected_corr)
        assert result.r_squared == pytest.approx(expected_corr ** 2)
        assert result.volatility == pytest.approx(math.sqrt(0.00015) * math.sqrt(TRADING_DAYS_PER_YEAR))
        assert result.observations == 4

    def test_flat_benchmark_returns_none(self):
        assert beta_from_returns([0.01, 0.02, -0.01], [0.0, 0.0, 0.0]) is None

    def test_single_observation_returns_none(self):
        assert beta_from_returns([0.01], [0.02]) is None

    def test_length_mismatch_returns_none(self):
        assert beta_from_returns([0.01, 0.02], [0.01, 0.02, 0.03]) is None

    def test_flat_subject_has_zero_beta_and_no_correlation(self):
        result = beta_from_returns([0.0, 0.0, 0.0], [0.01, -0.02, 0.03])

        assert result.beta == pytest.approx(0.0)
        assert result.correlation is None
        assert result.r_squared is None
        assert result.volatility == pytest.approx(0.0)


class TestComputeBeta:
    """Tests for the series-level entry point."""

    def test_scaled_returns_give_exact_beta(self):
        rng = np.random.default_rng(42)
        benchmark_returns = rng.normal(0.0005, 0.01, TRADING_DAYS_PER_YEAR)
        subject_returns = 1.5 * benchmark_returns

        benchmark = make_series("^NSEI", prices_from_returns(benchmark_returns, 20000.0))
        subject = make_series("TCS.NS", prices_from_returns(subject_returns, 3500.0))

        result = compute_beta(subject, benchmark)

        assert result.beta == pytest.approx(1.5, rel=1e-9)
        assert result.correlation == pytest.approx(1.0)
        assert result.r_squared == pytest.approx(1.0)
        assert result.alpha == pytest.approx(0.0, abs=1e-12)
        assert result.observations == TRADING_DAYS_PER_YEAR

    def test_negative_beta(self):
        benchmark_returns = [0.01, -0.02, 0.015, -0.005, 0.02]
        subject_returns = [-r for r in benchmark_returns]

        result = compute_beta(
            make_series("A", prices_from_returns(subject_returns)),
            make_series("^NSEI", prices_from_returns(benchmark_returns)),
        )

        assert result.beta == pytest.approx(-1.0)
        assert result.correlation == pytest.approx(-1.0)

    def test_one_common_day_returns_none(self):
        subject = make_series("A", [10, 11, 12])
        benchmark = make_series("^NSEI", [100, 101, 102], start=START + timedelta(days=2))

        assert compute_beta(subject, benchmark) is None

    def test_flat_index_returns_none(self):
        subject = make_series("A", [10, 11, 12, 11])
        benchmark = make_series("^NSEI", [100, 100, 100, 100])

        assert compute_beta(subject, benchmark) is None

    def test_zero_close_is_excluded_not_divided(self):
        subject = make_series("A", [10, 0, 11, 12, 13])
        benchmark = make_series("^NSEI", [100, 100, 102, 101, 104])

        result = compute_beta(subject, benchmark)

        assert result is not None
        assert result.observations == 3
        assert all(math.isfinite(v) for v in (result.beta, result.alpha, result.volatility))
