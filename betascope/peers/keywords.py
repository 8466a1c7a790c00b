"""
Keyword extraction and embedding similarity for business descriptions.

Both helpers cache per ticker on the instance. The pipeline creates fresh
instances for every request, so nothing is cached across requests.
"""

import asyncio
import re
from typing import Dict, FrozenSet, List, Optional

import numpy as np
import structlog
from langchain_core.embeddings import Embeddings
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage

from betascope.config import config
from betascope.exceptions import ResponseParsingError

logger = structlog.get_logger(__name__)

KEYWORD_SYSTEM_PROMPT = (
    "You summarize company business descriptions into short keywords. "
    "Answer with a single comma-separated line and nothing else."
)

KEYWORD_PROMPT_TEMPLATE = (
    "Extract exactly {count} keywords (one or two words each, lowercase) that "
    "describe what this company sells and to whom.\n\n"
    "Description:\n{text}"
)

# Descriptions are truncated before being sent to the model
MAX_DESCRIPTION_CHARS = 4000


def parse_keywords(raw: str, limit: int) -> FrozenSet[str]:
    """
    Turn a model reply into a normalized keyword set.

    Accepts comma, semicolon or newline separated lists, with optional
    bullets or numbering.

    Example:
        parse_keywords("1. IT Services, Consulting; cloud", 5)
        -> frozenset({"it services", "consulting", "cloud"})

    Raises:
        ResponseParsingError: If no keyword can be read from the reply
    """
    parts = re.split(r"[,;\n]+", raw or "")
    keywords: List[str] = []
    for part in parts:
        word = re.sub(r"^\s*(?:[-*•]|\d+[.)])\s*", "", part)
        word = re.sub(r"\s+", " ", word).strip(" .\"'`").lower()
        if word and word not in keywords:
            keywords.append(word)

    if not keywords:
        raise ResponseParsingError(
            "No keywords found in model reply",
            expected_format="comma-separated keywords",
            raw_response=raw,
        )
    return frozenset(keywords[:limit])


def _message_text(content) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return " ".join(
            part.get("text", "") if isinstance(part, dict) else str(part)
            for part in content
        )
    return str(content)


class KeywordExtractor:
    """
    Extract a fixed-size keyword set from a business summary via an LLM.

    Failures are logged and produce an empty set so scoring falls back to
    the sector/industry rule.

    Example:
        extractor = KeywordExtractor(create_keyword_llm())
        keywords = await extractor.extract("TCS.NS", profile.business_summary)
    """

    def __init__(self, llm: BaseChatModel, keyword_count: Optional[int] = None):
        self.llm = llm
        self.keyword_count = keyword_count or config.keyword_set_size
        self._cache: Dict[str, FrozenSet[str]] = {}
        self._pending: Dict[str, asyncio.Task] = {}

    async def extract(self, ticker: str, text: Optional[str]) -> FrozenSet[str]:
        """Return cached keywords for a ticker, calling the model at most once."""
        key = ticker.strip().upper()
        if key in self._cache:
            return self._cache[key]
        if not text:
            return frozenset()

        # Concurrent callers for the same ticker share one model call
        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(self._call_model(key, text))
            self._pending[key] = task
        try:
            keywords = await task
        finally:
            self._pending.pop(key, None)

        self._cache[key] = keywords
        return keywords

    async def _call_model(self, ticker: str, text: str) -> FrozenSet[str]:
        messages = [
            SystemMessage(content=KEYWORD_SYSTEM_PROMPT),
            HumanMessage(content=KEYWORD_PROMPT_TEMPLATE.format(
                count=self.keyword_count,
                text=text[:MAX_DESCRIPTION_CHARS],
            )),
        ]
        try:
            reply = await self.llm.ainvoke(messages)
            keywords = parse_keywords(_message_text(reply.content), self.keyword_count)
        except ResponseParsingError as e:
            logger.warning("keyword_parse_failed", ticker=ticker, error=str(e))
            return frozenset()
        except Exception as e:
            logger.warning(
                "keyword_extraction_failed",
                ticker=ticker,
                error_type=type(e).__name__,
                error=str(e),
            )
            return frozenset()

        logger.debug("keywords_extracted", ticker=ticker, keywords=sorted(keywords))
        return keywords

    def cached(self, ticker: str) -> Optional[FrozenSet[str]]:
        return self._cache.get(ticker.strip().upper())


def cosine_similarity(left: List[float], right: List[float]) -> Optional[float]:
    a = np.asarray(left, dtype=float)
    b = np.asarray(right, dtype=float)
    if a.size == 0 or a.size != b.size:
        return None
    norm = np.linalg.norm(a) * np.linalg.norm(b)
    if norm == 0:
        return None
    return float(np.dot(a, b) / norm)


class EmbeddingSimilarity:
    """Cosine similarity between business-summary embeddings."""

    def __init__(self, embeddings: Embeddings):
        self.embeddings = embeddings
        self._cache: Dict[str, Optional[List[float]]] = {}

    async def embed(self, ticker: str, text: Optional[str]) -> Optional[List[float]]:
        key = ticker.strip().upper()
        if key in self._cache:
            return self._cache[key]
        if not text:
            return None
        try:
            vector = await self.embeddings.aembed_query(text[:MAX_DESCRIPTION_CHARS])
        except Exception as e:
            logger.warning("embedding_failed", ticker=key, error_type=type(e).__name__, error=str(e))
            vector = None
        self._cache[key] = vector
        return vector

    async def similarity(
        self,
        left_ticker: str,
        left_text: Optional[str],
        right_ticker: str,
        right_text: Optional[str],
    ) -> Optional[float]:
        left = await self.embed(left_ticker, left_text)
        right = await self.embed(right_ticker, right_text)
        if left is None or right is None:
            return None
        return cosine_similarity(left, right)
