"""
LLM configuration for business-summary keyword extraction and embeddings.

Models are created on demand rather than at import time so the pipeline still
runs (with the coarse sector/industry scoring rule) when no Google API key is
configured. Rate limits come from GEMINI_RPM_LIMIT.
"""

import logging
from typing import Optional

from langchain_core.embeddings import Embeddings
from langchain_core.language_models import BaseChatModel
from langchain_core.rate_limiters import InMemoryRateLimiter
from langchain_google_genai import ChatGoogleGenerativeAI, GoogleGenerativeAIEmbeddings

from betascope.config import config, llm_available
from betascope.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_RATE_LIMITER: Optional[InMemoryRateLimiter] = None


def _create_rate_limiter_from_rpm(rpm: int) -> InMemoryRateLimiter:
    """
    Create a rate limiter from RPM (requests per minute) setting.

    Uses 80% of the limit, with a burst bucket of 10% of RPM (at least 5)
    so a batch of keyword calls can start together.
    """
    rps = (rpm / 60.0) * 0.8
    max_bucket = max(5, int(rpm * 0.1))

    logger.info(
        f"Rate limiter configured: {rpm} RPM -> {rps:.2f} RPS "
        f"(bucket size: {max_bucket})"
    )

    return InMemoryRateLimiter(
        requests_per_second=rps,
        check_every_n_seconds=0.1,
        max_bucket_size=max_bucket
    )


def get_rate_limiter() -> InMemoryRateLimiter:
    global _RATE_LIMITER
    if _RATE_LIMITER is None:
        _RATE_LIMITER = _create_rate_limiter_from_rpm(config.gemini_rpm_limit)
    return _RATE_LIMITER


def _require_api_key(purpose: str) -> None:
    if not llm_available():
        raise ConfigurationError(
            f"GOOGLE_API_KEY is required for {purpose}",
            config_key="GOOGLE_API_KEY",
        )


def create_keyword_llm(
    model: Optional[str] = None,
    temperature: float = 0.0,
    timeout: Optional[int] = None,
    max_retries: int = 2,
) -> BaseChatModel:
    """
    Create the chat model used to summarize business descriptions into keywords.

    Raises:
        ConfigurationError: If GOOGLE_API_KEY is not set
    """
    _require_api_key("keyword extraction")
    model_name = model or config.keyword_model
    final_timeout = timeout if timeout is not None else config.fetch_timeout

    logger.info(f"Initializing keyword LLM: {model_name} (timeout={final_timeout})")
    return ChatGoogleGenerativeAI(
        model=model_name,
        temperature=temperature,
        timeout=final_timeout,
        max_retries=max_retries,
        rate_limiter=get_rate_limiter(),
        max_output_tokens=256,
    )


def create_embeddings(model: Optional[str] = None) -> Embeddings:
    """
    Create the text-embedding model used for optional similarity blending.

    Raises:
        ConfigurationError: If GOOGLE_API_KEY is not set
    """
    _require_api_key("text embeddings")
    model_name = model or config.embedding_model
    logger.info(f"Initializing embeddings: {model_name}")
    return GoogleGenerativeAIEmbeddings(model=model_name)
