"""
SimilarityScorer - Rank peer candidates against the subject company.

Scoring rules:
- Both business summaries reliable (long enough, keywords extracted):
  score = 30 + 0.7 * keyword_overlap when overlap > 0, else 10
- Otherwise: industry match 45, sector-only match 25, no match 10
- Optional embedding blend on reliable texts:
  score = (1 - w) * score + w * max(cosine, 0) * 100

keyword_overlap = |K_subject & K_candidate| / keyword_set_size * 100
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, List, Optional

import structlog

from betascope.config import config
from betascope.data.profile_fetcher import CompanyProfile
from betascope.peers.finder import PeerCandidate, same_label
from betascope.peers.keywords import EmbeddingSimilarity, KeywordExtractor

logger = structlog.get_logger(__name__)

KEYWORD_BASE_SCORE = 30.0
KEYWORD_WEIGHT = 0.7
FLOOR_SCORE = 10.0
INDUSTRY_MATCH_SCORE = 45.0
SECTOR_MATCH_SCORE = 25.0

HIGH_CONFIDENCE_THRESHOLD = 50.0
MEDIUM_CONFIDENCE_THRESHOLD = 30.0


class ConfidenceTier(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

    @classmethod
    def for_score(cls, score: float) -> "ConfidenceTier":
        if score >= HIGH_CONFIDENCE_THRESHOLD:
            return cls.HIGH
        if score >= MEDIUM_CONFIDENCE_THRESHOLD:
            return cls.MEDIUM
        return cls.LOW


class MatchBasis(str, Enum):
    """Which rule produced a score."""

    KEYWORDS = "keywords"
    INDUSTRY = "industry"
    SECTOR = "sector"
    NONE = "none"


@dataclass(frozen=True)
class ScoredPeer:
    """A peer candidate with its similarity score and confidence tier."""

    candidate: PeerCandidate
    similarity_score: float
    confidence_tier: ConfidenceTier
    match_basis: MatchBasis
    keywords: FrozenSet[str] = frozenset()
    keyword_overlap: Optional[float] = None
    embedding_similarity: Optional[float] = None

    @property
    def ticker(self) -> str:
        return self.candidate.ticker


def keyword_overlap(
    subject_keywords: FrozenSet[str],
    candidate_keywords: FrozenSet[str],
    keyword_set_size: int,
) -> float:
    """Shared keywords as a percentage of the fixed keyword set size."""
    if keyword_set_size <= 0:
        return 0.0
    shared = len(subject_keywords & candidate_keywords)
    return min(100.0, shared / keyword_set_size * 100.0)


def classification_score(subject: CompanyProfile, candidate: PeerCandidate) -> tuple:
    """Coarse score from sector/industry metadata: (score, MatchBasis)."""
    if same_label(subject.industry, candidate.industry):
        return INDUSTRY_MATCH_SCORE, MatchBasis.INDUSTRY
    if same_label(subject.sector, candidate.sector):
        return SECTOR_MATCH_SCORE, MatchBasis.SECTOR
    return FLOOR_SCORE, MatchBasis.NONE


class SimilarityScorer:
    """
    Score and rank peer candidates.

    Example:
        scorer = SimilarityScorer(keyword_extractor=KeywordExtractor(llm))
        ranked = await scorer.rank(subject_profile, candidates, top_n=5)
    """

    def __init__(
        self,
        keyword_extractor: Optional[KeywordExtractor] = None,
        embedding_similarity: Optional[EmbeddingSimilarity] = None,
        embedding_weight: Optional[float] = None,
        min_summary_length: Optional[int] = None,
        keyword_set_size: Optional[int] = None,
    ):
        self.keyword_extractor = keyword_extractor
        self.embedding_similarity = embedding_similarity
        self.embedding_weight = config.embedding_weight if embedding_weight is None else embedding_weight
        self.min_summary_length = min_summary_length or config.min_summary_length
        self.keyword_set_size = keyword_set_size or config.keyword_set_size

    def is_reliable(self, text: Optional[str]) -> bool:
        return bool(text) and len(text.strip()) >= self.min_summary_length

    async def score(self, subject: CompanyProfile, candidate: PeerCandidate) -> ScoredPeer:
        """Score one candidate against the subject."""
        reliable = (
            self.is_reliable(subject.business_summary)
            and self.is_reliable(candidate.business_summary)
        )

        subject_keywords: FrozenSet[str] = frozenset()
        candidate_keywords: FrozenSet[str] = frozenset()
        if reliable and self.keyword_extractor is not None:
            subject_keywords = await self.keyword_extractor.extract(subject.ticker, subject.business_summary)
            candidate_keywords = await self.keyword_extractor.extract(candidate.ticker, candidate.business_summary)

        overlap: Optional[float] = None
        if reliable and subject_keywords and candidate_keywords:
            overlap = keyword_overlap(subject_keywords, candidate_keywords, self.keyword_set_size)
            score = KEYWORD_BASE_SCORE + KEYWORD_WEIGHT * overlap if overlap > 0 else FLOOR_SCORE
            basis = MatchBasis.KEYWORDS
        else:
            score, basis = classification_score(subject, candidate)

        similarity: Optional[float] = None
        if reliable and self.embedding_similarity is not None and self.embedding_weight > 0:
            similarity = await self.embedding_similarity.similarity(
                subject.ticker, subject.business_summary,
                candidate.ticker, candidate.business_summary,
            )
            if similarity is not None:
                w = self.embedding_weight
                score = (1 - w) * score + w * max(similarity, 0.0) * 100.0

        score = round(min(100.0, max(0.0, score)), 2)
        return ScoredPeer(
            candidate=candidate,
            similarity_score=score,
            confidence_tier=ConfidenceTier.for_score(score),
            match_basis=basis,
            keywords=candidate_keywords,
            keyword_overlap=overlap,
            embedding_similarity=similarity,
        )

    async def _score_or_none(
        self,
        subject: CompanyProfile,
        candidate: PeerCandidate,
    ) -> Optional[ScoredPeer]:
        try:
            return await self.score(subject, candidate)
        except Exception as e:
            logger.warning(
                "peer_score_failed",
                ticker=candidate.ticker,
                error_type=type(e).__name__,
                error=str(e),
            )
            return None

    async def rank(
        self,
        subject: CompanyProfile,
        candidates: List[PeerCandidate],
        top_n: Optional[int] = None,
    ) -> List[ScoredPeer]:
        """
        Score all candidates and keep the best.

        A candidate whose scoring raises is dropped; the rest are still
        ranked. Sorting is stable, so equal scores keep discovery order.
        """
        top_n = top_n or config.top_peers
        if not candidates:
            return []

        results = await asyncio.gather(*(self._score_or_none(subject, c) for c in candidates))
        scored = [peer for peer in results if peer is not None]
        ranked = sorted(scored, key=lambda p: p.similarity_score, reverse=True)[:top_n]

        logger.info(
            "peers_scored",
            ticker=subject.ticker,
            candidates=len(candidates),
            kept=len(ranked),
            top=[(p.ticker, p.similarity_score, p.confidence_tier.value) for p in ranked],
        )
        return ranked
