"""
Peer discovery and ranking for beta comparison.

This module provides functionality for:
- Finding candidate peers for a subject company (tiered discovery)
- Scoring candidates by business-description similarity
- Formatting peer tables and beta reports

Main Classes:
    - PeerFinder: Tiered peer candidate discovery
    - SimilarityScorer: Similarity scoring and ranking
    - KeywordExtractor: LLM keyword sets for business summaries

Usage:
    from betascope.peers import PeerFinder, SimilarityScorer

    candidates = await PeerFinder().resolve_peers(subject_profile, suffix=".NS")
    ranked = await SimilarityScorer().rank(subject_profile, candidates, top_n=5)
"""

from betascope.peers.finder import PeerCandidate, PeerFinder
from betascope.peers.keywords import EmbeddingSimilarity, KeywordExtractor
from betascope.peers.scorer import ConfidenceTier, MatchBasis, ScoredPeer, SimilarityScorer
from betascope.peers.visualizer import format_analysis_report, generate_peer_table

__all__ = [
    "PeerCandidate",
    "PeerFinder",
    "KeywordExtractor",
    "EmbeddingSimilarity",
    "ConfidenceTier",
    "MatchBasis",
    "ScoredPeer",
    "SimilarityScorer",
    "format_analysis_report",
    "generate_peer_table",
]
