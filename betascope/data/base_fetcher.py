"""
Base Fetcher Abstract Class

Provides common functionality for all collaborator fetchers:
- A single FetchResult return type instead of scattered None checks
- Timeout handling per external call
- Standard error handling and logging
"""

import asyncio
import structlog
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from betascope.exceptions import DataFetchError, DataParsingError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

PER_SOURCE_TIMEOUT = 15


class FailureReason(str, Enum):
    """Why a collaborator call produced no data."""

    NO_DATA = "no_data"
    PROVIDER_ERROR = "provider_error"
    PARSE_ERROR = "parse_error"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class FetchFailure:
    """A collaborator call that yielded nothing usable."""

    source: str
    identifier: str
    reason: FailureReason
    message: str = ""

    def describe(self) -> str:
        text = f"{self.source} returned {self.reason.value} for {self.identifier}"
        return f"{text}: {self.message}" if self.message else text


@dataclass(frozen=True)
class FetchResult(Generic[T]):
    """
    Outcome of one collaborator call: a value or a FetchFailure, never both.

    The orchestrator decides per call whether a failure is fatal
    (subject ticker, market index) or ignorable (a peer, a discovery tier).
    """

    value: Optional[T] = None
    failure: Optional[FetchFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, value: T) -> "FetchResult[T]":
        return cls(value=value)

    @classmethod
    def fail(
        cls,
        source: str,
        identifier: str,
        reason: FailureReason,
        message: str = "",
    ) -> "FetchResult[T]":
        return cls(failure=FetchFailure(source, identifier, reason, message))

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok else default


class BaseFetcher(ABC):
    """
    Abstract base class for all collaborator fetchers.

    Subclasses implement `fetch()`, which may raise. Callers use
    `fetch_with_timeout()`, which never raises (except on cancellation) and
    converts every outcome into a FetchResult.
    """

    SOURCE = "base"
    DEFAULT_TIMEOUT = PER_SOURCE_TIMEOUT

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self.logger = structlog.get_logger(self.__class__.__name__)

    @abstractmethod
    async def fetch(self, identifier: str, **kwargs: Any) -> Any:
        """
        Fetch data for an identifier.

        Returns:
            The fetched value, or None when the provider has nothing

        Raises:
            DataFetchError: On provider or network failure
            DataParsingError: When the payload has an unexpected shape
        """
        pass

    async def fetch_with_timeout(
        self,
        identifier: str,
        timeout: Optional[float] = None,
        **kwargs: Any,
    ) -> FetchResult:
        """
        Fetch data with timeout protection.

        Args:
            identifier: Ticker or symbol to fetch
            timeout: Optional timeout override

        Returns:
            FetchResult wrapping the value or a typed failure
        """
        effective_timeout = timeout or self.timeout

        try:
            value = await asyncio.wait_for(
                self.fetch(identifier, **kwargs),
                timeout=effective_timeout
            )
        except asyncio.TimeoutError:
            self.logger.warning(
                "fetch_timeout",
                identifier=identifier,
                timeout=effective_timeout
            )
            return FetchResult.fail(
                self.SOURCE, identifier, FailureReason.TIMEOUT,
                f"timed out after {effective_timeout}s",
            )
        except asyncio.CancelledError:
            self.logger.warning("fetch_cancelled", identifier=identifier)
            raise
        except DataParsingError as e:
            self.logger.warning("fetch_parse_error", identifier=identifier, error=str(e))
            return FetchResult.fail(
                self.SOURCE, identifier, FailureReason.PARSE_ERROR, e.message
            )
        except DataFetchError as e:
            self.logger.warning("fetch_error", identifier=identifier, error=str(e))
            return FetchResult.fail(
                self.SOURCE, identifier, FailureReason.PROVIDER_ERROR, e.message
            )
        except Exception as e:
            self.logger.error(
                "fetch_unexpected_error",
                identifier=identifier,
                error_type=type(e).__name__,
                error=str(e)
            )
            return FetchResult.fail(
                self.SOURCE, identifier, FailureReason.PROVIDER_ERROR,
                f"{type(e).__name__}: {e}",
            )

        if value is None or self._is_empty(value):
            self.logger.info("fetch_no_data", identifier=identifier)
            return FetchResult.fail(self.SOURCE, identifier, FailureReason.NO_DATA)

        return FetchResult.success(value)

    def _is_empty(self, value: Any) -> bool:
        """Override for sources whose empty payload is not None."""
        try:
            return len(value) == 0
        except TypeError:
            return False
