"""
Custom exception hierarchy for BetaScope.

Exceptions fall into two groups:
- Terminal request outcomes that propagate to the caller (the subject ticker
  or the market index cannot be fetched, or the fetched data is statistically
  unusable).
- Local errors raised inside collaborator calls, which the fetch layer turns
  into FetchFailure values instead of letting them escape.

Exception Hierarchy:
    BetaScopeError (base)
    ├── DataError
    │   ├── DataFetchError
    │   ├── DataValidationError
    │   └── DataParsingError
    ├── TickerError
    │   └── TickerValidationError
    ├── AnalysisError
    │   ├── NoMarketDataError
    │   ├── NoSubjectDataError
    │   ├── InsufficientDataPointsError
    │   └── AnalysisTimeoutError
    ├── LLMError
    │   └── ResponseParsingError
    ├── AnalysisHistoryError
    └── ConfigurationError
"""

from typing import Any, Optional, Dict


class BetaScopeError(Exception):
    """
    Base exception for all BetaScope errors.

    Attributes:
        message: Human-readable error description
        details: Additional context (ticker, source, etc.)
        cause: Original exception if this wraps another error
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        self.message = message
        self.details = details or {}
        self.cause = cause
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the exception message with details."""
        msg = self.message
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            msg = f"{msg} [{detail_str}]"
        if self.cause:
            msg = f"{msg} (caused by: {type(self.cause).__name__}: {self.cause})"
        return msg


# =============================================================================
# Data-Related Exceptions
# =============================================================================

class DataError(BetaScopeError):
    """Base exception for all data-related errors."""
    pass


class DataFetchError(DataError):
    """
    Raised when data cannot be fetched from an external source.

    Examples:
        - Provider request timeout
        - Network connectivity issues
        - Empty price history for the requested window
    """

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        ticker: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if source:
            details["source"] = source
        if ticker:
            details["ticker"] = ticker
        super().__init__(message, details=details, **kwargs)


class DataValidationError(DataError):
    """
    Raised when input or fetched data fails validation checks.

    Examples:
        - Start date after end date
        - Unknown exchange code
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        expected: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = value
        if expected:
            details["expected"] = expected
        super().__init__(message, details=details, **kwargs)


class DataParsingError(DataError):
    """
    Raised when a provider payload cannot be parsed into the expected shape.

    Examples:
        - JSON without the expected result list
        - HTML page without a peer table
    """

    def __init__(
        self,
        message: str,
        raw_data: Optional[str] = None,
        expected_type: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if raw_data:
            # Truncate raw data to prevent huge error messages
            details["raw_data"] = raw_data[:200] + "..." if len(raw_data) > 200 else raw_data
        if expected_type:
            details["expected_type"] = expected_type
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# Ticker-Related Exceptions
# =============================================================================

class TickerError(BetaScopeError):
    """Base exception for all ticker-related errors."""
    pass


class TickerValidationError(TickerError):
    """Raised when a ticker symbol fails validation (empty, bad characters)."""

    def __init__(
        self,
        message: str,
        ticker: str,
        reason: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details["ticker"] = ticker
        if reason:
            details["reason"] = reason
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# Analysis-Related Exceptions
# =============================================================================

class AnalysisError(BetaScopeError):
    """
    Base exception for terminal analysis outcomes.

    Carries the pipeline state the request stopped in, so callers can
    tell "no data" apart from "data was statistically unusable".
    """

    def __init__(
        self,
        message: str,
        ticker: Optional[str] = None,
        state: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if ticker:
            details["ticker"] = ticker
        if state:
            details["state"] = state
        self.state = state
        super().__init__(message, details=details, **kwargs)


class NoMarketDataError(AnalysisError):
    """Raised when the benchmark index history is unavailable."""
    pass


class NoSubjectDataError(AnalysisError):
    """Raised when the subject ticker has no data under any exchange suffix."""

    def __init__(
        self,
        message: str,
        ticker: Optional[str] = None,
        identifiers_tried: Optional[list] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if identifiers_tried:
            details["identifiers_tried"] = identifiers_tried
        super().__init__(message, ticker=ticker, details=details, **kwargs)


class InsufficientDataPointsError(AnalysisError):
    """
    Raised when price data exists but cannot produce a beta.

    Examples:
        - Fewer than 2 aligned return observations
        - Zero variance in the benchmark returns (flat index)
    """

    def __init__(
        self,
        message: str,
        ticker: Optional[str] = None,
        aligned_points: Optional[int] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if aligned_points is not None:
            details["aligned_points"] = aligned_points
        super().__init__(message, ticker=ticker, details=details, **kwargs)


class AnalysisTimeoutError(AnalysisError):
    """Raised when a request exceeds its overall deadline."""
    pass


# =============================================================================
# LLM-Related Exceptions
# =============================================================================

class LLMError(BetaScopeError):
    """Base exception for all LLM-related errors."""
    pass


class ResponseParsingError(LLMError):
    """Raised when an LLM response cannot be turned into keywords."""

    def __init__(
        self,
        message: str,
        expected_format: Optional[str] = None,
        raw_response: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if expected_format:
            details["expected_format"] = expected_format
        if raw_response:
            details["raw_response"] = raw_response[:200] + "..." if len(raw_response) > 200 else raw_response
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# Storage / Configuration Exceptions
# =============================================================================

class AnalysisHistoryError(BetaScopeError):
    """Raised when the search history database cannot be read or written."""
    pass


class ConfigurationError(BetaScopeError):
    """
    Raised when configuration is invalid or missing.

    Examples:
        - Missing GOOGLE_API_KEY while keyword extraction is enabled
        - Embedding weight outside [0, 1]
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        if expected:
            details["expected"] = expected
        super().__init__(message, details=details, **kwargs)
