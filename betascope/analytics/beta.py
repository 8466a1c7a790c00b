"""
Return and beta calculations.

All functions here are pure and synchronous: they take immutable price
series and return new values. Covariance and variance use population
moments (divide by n), which is the canonical beta definition for this
package.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from betascope.data.price_fetcher import PriceSeries

logger = logging.getLogger(__name__)

TRADING_DAYS_PER_YEAR = 252
MIN_RETURN_OBSERVATIONS = 2


@dataclass(frozen=True)
class AlignedReturnPair:
    """Equal-length daily return sequences for subject and benchmark."""

    subject_returns: Tuple[float, ...]
    benchmark_returns: Tuple[float, ...]
    aligned_points: int

    def __len__(self) -> int:
        return len(self.subject_returns)


@dataclass(frozen=True)
class BetaResult:
    """
    Regression statistics of subject returns against benchmark returns.

    Attributes:
        beta: cov(subject, benchmark) / var(benchmark)
        alpha: Daily OLS intercept, mean(subject) - beta * mean(benchmark)
        correlation: Pearson coefficient (None when subject returns are flat)
        r_squared: correlation squared
        volatility: Annualized stddev of subject daily returns
        observations: Number of return observations used
    """

    beta: float
    alpha: Optional[float] = None
    correlation: Optional[float] = None
    r_squared: Optional[float] = None
    volatility: Optional[float] = None
    observations: int = 0


def _usable(close: Optional[float]) -> bool:
    return close is not None and not np.isnan(close) and close > 0


def align_prices(
    subject: PriceSeries,
    benchmark: PriceSeries,
) -> Tuple[List[float], List[float]]:
    """
    Pair subject and benchmark closes by date.

    A date is kept only when it is present in both series and both closes
    are positive. Order follows the subject series.

    Returns:
        (subject_closes, benchmark_closes) of equal length
    """
    benchmark_by_date = {
        day: close for day, close in benchmark.points if _usable(close)
    }

    subject_closes: List[float] = []
    benchmark_closes: List[float] = []
    for day, close in subject.points:
        market_close = benchmark_by_date.get(day)
        if market_close is None or not _usable(close):
            continue
        subject_closes.append(float(close))
        benchmark_closes.append(float(market_close))

    return subject_closes, benchmark_closes


def compute_returns(prices: Sequence[float]) -> List[float]:
    """
    Simple daily returns: r_t = (p_t - p_{t-1}) / p_{t-1}.

    Example:
        compute_returns([100, 110, 99]) -> [0.1, -0.1]
    """
    values = np.asarray(prices, dtype=float)
    if values.size < 2:
        return []
    return list((values[1:] - values[:-1]) / values[:-1])


def align_returns(subject: PriceSeries, benchmark: PriceSeries) -> AlignedReturnPair:
    """Align two series by date and difference them into daily returns."""
    subject_closes, benchmark_closes = align_prices(subject, benchmark)
    return AlignedReturnPair(
        subject_returns=tuple(compute_returns(subject_closes)),
        benchmark_returns=tuple(compute_returns(benchmark_closes)),
        aligned_points=len(subject_closes),
    )


def beta_from_returns(
    subject_returns: Sequence[float],
    benchmark_returns: Sequence[float],
    trading_days_per_year: int = TRADING_DAYS_PER_YEAR,
) -> Optional[BetaResult]:
    """
    Regress subject returns on benchmark returns.

    Returns:
        BetaResult, or None when there are fewer than 2 observations,
        the sequences differ in length, or benchmark variance is zero
    """
    s = np.asarray(subject_returns, dtype=float)
    m = np.asarray(benchmark_returns, dtype=float)
    n = s.size

    if n != m.size:
        logger.warning(f"Return series length mismatch ({n} vs {m.size})")
        return None
    if n < MIN_RETURN_OBSERVATIONS:
        logger.warning(f"Insufficient data for beta calculation ({n} return observations)")
        return None

    mean_s = s.mean()
    mean_m = m.mean()
    dev_s = s - mean_s
    dev_m = m - mean_m

    covariance = float((dev_s * dev_m).sum() / n)
    variance_m = float((dev_m ** 2).sum() / n)
    variance_s = float((dev_s ** 2).sum() / n)

    if variance_m == 0:
        logger.warning("Benchmark returns have zero variance; beta is undefined")
        return None

    beta = covariance / variance_m
    alpha = float(mean_s - beta * mean_m)

    correlation: Optional[float] = None
    r_squared: Optional[float] = None
    if variance_s > 0:
        correlation = covariance / np.sqrt(variance_s * variance_m)
        # Guard against rounding just outside [-1, 1]
        correlation = float(min(1.0, max(-1.0, correlation)))
        r_squared = correlation ** 2

    volatility = float(np.sqrt(variance_s) * np.sqrt(trading_days_per_year))

    return BetaResult(
        beta=float(beta),
        alpha=alpha,
        correlation=correlation,
        r_squared=r_squared,
        volatility=volatility,
        observations=n,
    )


def compute_beta(subject: PriceSeries, benchmark: PriceSeries) -> Optional[BetaResult]:
    """
    Compute beta and companion statistics for two price series.

    Mismatched lengths and non-overlapping dates are expected; alignment
    handles them.

    Example:
        >>> result = compute_beta(stock_series, index_series)
        >>> result.beta if result else None
    """
    pair = align_returns(subject, benchmark)
    logger.debug(
        f"Aligned {subject.ticker} to {benchmark.ticker}: "
        f"{pair.aligned_points} common closes, {len(pair)} returns"
    )
    return beta_from_returns(pair.subject_returns, pair.benchmark_returns)
