"""
Exchange and ticker utilities for Indian listings.

Maps an exchange choice to its Yahoo suffix, the alternate suffix used for the
retry-once fallback, and the benchmark index the beta is measured against.
"""

import re
from enum import Enum
from typing import Tuple, Union
import structlog

from betascope.exceptions import DataValidationError, TickerValidationError

logger = structlog.get_logger(__name__)

TICKER_PATTERN = re.compile(r"^[A-Z0-9&\-_]+(\.[A-Z]{1,3})?$")


class Exchange(str, Enum):
    """Exchanges a subject ticker can be analyzed on."""

    NSE = "NSE"
    BSE = "BSE"

    @classmethod
    def parse(cls, value: Union[str, "Exchange"]) -> "Exchange":
        if isinstance(value, Exchange):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise DataValidationError(
                f"Unsupported exchange: {value}",
                field="exchange",
                value=value,
                expected=", ".join(e.value for e in cls),
            )


# Format: exchange: (yfinance_suffix, alternate_suffix, index_ticker, index_name)
EXCHANGE_PROFILES = {
    Exchange.NSE: (".NS", ".BO", "^NSEI", "NIFTY 50"),
    Exchange.BSE: (".BO", ".NS", "^BSESN", "SENSEX"),
}

KNOWN_SUFFIXES = tuple({profile[0] for profile in EXCHANGE_PROFILES.values()})


def get_suffix(exchange: Exchange) -> str:
    return EXCHANGE_PROFILES[exchange][0]


def get_alternate_suffix(exchange: Exchange) -> str:
    return EXCHANGE_PROFILES[exchange][1]


def get_market_index(exchange: Exchange) -> Tuple[str, str]:
    """Return (index_ticker, index_display_name) for an exchange."""
    _, _, index_ticker, index_name = EXCHANGE_PROFILES[exchange]
    return index_ticker, index_name


def normalize_symbol(ticker: str) -> str:
    """Upper-case and strip a ticker; used as the dedup key for peers."""
    return (ticker or "").strip().upper()


def base_symbol(ticker: str) -> str:
    """
    Strip a known exchange suffix.

    Example:
        "tcs.ns" -> "TCS"
        "INFY" -> "INFY"
    """
    symbol = normalize_symbol(ticker)
    for suffix in KNOWN_SUFFIXES:
        if symbol.endswith(suffix):
            return symbol[: -len(suffix)]
    return symbol


def with_suffix(ticker: str, suffix: str) -> str:
    """Attach the exchange suffix unless the ticker already carries one."""
    symbol = normalize_symbol(ticker)
    if symbol.endswith(suffix):
        return symbol
    return f"{base_symbol(symbol)}{suffix}"


def validate_ticker(ticker: str) -> str:
    """
    Validate a user supplied ticker and return it normalized.

    Raises:
        TickerValidationError: If the ticker is empty or malformed
    """
    symbol = normalize_symbol(ticker)
    if not symbol:
        raise TickerValidationError("Ticker must not be empty", ticker=ticker or "", reason="empty")
    if not TICKER_PATTERN.match(symbol):
        raise TickerValidationError(
            f"Ticker {symbol} contains unsupported characters",
            ticker=symbol,
            reason="format",
        )
    return symbol


def resolve_identifiers(ticker: str, exchange: Exchange) -> Tuple[str, str]:
    """
    Return the primary and alternate Yahoo identifiers for a subject ticker.

    Example:
        resolve_identifiers("TCS", Exchange.NSE) -> ("TCS.NS", "TCS.BO")
    """
    symbol = validate_ticker(ticker)
    primary = with_suffix(symbol, get_suffix(exchange))
    alternate = f"{base_symbol(primary)}{get_alternate_suffix(exchange)}"
    logger.debug("ticker_identifiers_resolved", ticker=symbol, primary=primary, alternate=alternate)
    return primary, alternate
