"""
Return and beta analytics.

Usage:
    from betascope.analytics import compute_beta

    result = compute_beta(stock_series, index_series)
"""

from betascope.analytics.beta import (
    AlignedReturnPair,
    BetaResult,
    MIN_RETURN_OBSERVATIONS,
    TRADING_DAYS_PER_YEAR,
    align_prices,
    align_returns,
    beta_from_returns,
    compute_beta,
    compute_returns,
)

__all__ = [
    "AlignedReturnPair",
    "BetaResult",
    "MIN_RETURN_OBSERVATIONS",
    "TRADING_DAYS_PER_YEAR",
    "align_prices",
    "align_returns",
    "beta_from_returns",
    "compute_beta",
    "compute_returns",
]
