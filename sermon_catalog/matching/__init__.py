"""
Cross-source episode matching.

- scoring.py: title normalization and the weighted pair score
- matcher.py: forward / reverse / residual passes producing MatchCandidates
"""

from .matcher import MatchCandidate, match_episodes
from .scoring import (
    MATCH_THRESHOLD,
    MatchScore,
    extract_episode_token,
    looks_like_content,
    normalize_title,
    score_pair,
    title_similarity,
)

__all__ = [
    "MATCH_THRESHOLD",
    "MatchCandidate",
    "MatchScore",
    "extract_episode_token",
    "looks_like_content",
    "match_episodes",
    "normalize_title",
    "score_pair",
    "title_similarity",
]
