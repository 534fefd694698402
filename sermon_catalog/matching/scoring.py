"""
Pairwise similarity scoring between two episodes from different sources.

Weighted signals (sum of weights = 1.0):
    date proximity   0.50  1.0 within a day, linear decay to 0 at the window edge
    title            0.30  token-set Jaccard (+0.3 substring bonus, capped at 1.0)
    episode number   0.15  equal episode tokens extracted from both titles
    description      0.05  Jaccard of the first 200 chars, only for weak titles

When either date is missing the score is the title similarity alone, so a
date-less pair still has to clear the acceptance threshold on its title.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

DATE_WEIGHT = 0.5
TITLE_WEIGHT = 0.3
EPISODE_WEIGHT = 0.15
DESCRIPTION_WEIGHT = 0.05

MATCH_THRESHOLD = 0.6
DEFAULT_DATE_WINDOW_DAYS = 3.0
FULL_DATE_SCORE_DAYS = 1.0
SUBSTRING_BONUS = 0.3
WEAK_TITLE_SIMILARITY = 0.5
DESCRIPTION_PREFIX_CHARS = 200
MIN_WORD_LENGTH = 3

CONTENT_KEYWORDS = (
    "sermon",
    "message",
    "preaching",
    "teaching",
    "25-",
    "fx",
    "fxchurch",
    "part",
    "series",
)

# Series / channel decorations stripped before comparing titles
_TITLE_PREFIXES = re.compile(
    r"^\s*(?:sermon|message|teaching|preaching|sunday service|sunday message)\s*[:|\-]\s*"
)
_TITLE_SUFFIXES = re.compile(
    r"\s*[|\-]\s*(?:fx ?church|full service|sunday service|sermon|live)\s*$"
)
_PARENTHESIZED_TAGS = re.compile(r"\((?:live|full service|audio|sermon)\)")
_PART_ABBREVIATION = re.compile(r"\bpt\b\.?")

_EPISODE_PATTERNS = (
    ("code", re.compile(r"#?\b(\d{2}-\d{3,4})\b")),
    ("episode", re.compile(r"\bepisode\s*#?\s*(\d+)\b")),
    ("episode", re.compile(r"\bep\.?\s*#?\s*(\d+)\b")),
    ("part", re.compile(r"\bpart\s*#?\s*(\d+)\b")),
    ("number", re.compile(r"#\s*(\d+)\b")),
)


def _clean_title(title: str) -> str:
    lowered = (title or "").lower()
    lowered = _PART_ABBREVIATION.sub("part", lowered)
    lowered = _PARENTHESIZED_TAGS.sub(" ", lowered)
    lowered = _TITLE_PREFIXES.sub("", lowered)
    lowered = _TITLE_SUFFIXES.sub("", lowered)
    return lowered


def normalize_title(title: str) -> str:
    """
    Lowercase, strip series decorations, expand "pt." to "part", drop
    punctuation and collapse whitespace.

    >>> normalize_title("Sermon: Faith Series - Pt. 3 | FX Church")
    'faith series part 3'
    """
    cleaned = re.sub(r"[^\w\s]", " ", _clean_title(title))
    return re.sub(r"\s+", " ", cleaned).strip()


def _words(text: str) -> set[str]:
    return {w for w in text.split(" ") if len(w) >= MIN_WORD_LENGTH}


def jaccard(a: str, b: str) -> float:
    """Token-set Jaccard on words of 3+ characters (0.0 for empty sets)."""
    words_a, words_b = _words(a), _words(b)
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def title_similarity(title_a: str, title_b: str) -> float:
    """Jaccard of normalized titles plus a substring bonus, capped at 1.0."""
    norm_a, norm_b = normalize_title(title_a), normalize_title(title_b)
    if not norm_a or not norm_b:
        return 0.0
    score = jaccard(norm_a, norm_b)
    if norm_a in norm_b or norm_b in norm_a:
        score += SUBSTRING_BONUS
    return min(1.0, score)


def description_similarity(desc_a: Optional[str], desc_b: Optional[str]) -> float:
    prefix_a = normalize_title((desc_a or "")[:DESCRIPTION_PREFIX_CHARS])
    prefix_b = normalize_title((desc_b or "")[:DESCRIPTION_PREFIX_CHARS])
    return jaccard(prefix_a, prefix_b)


def extract_episode_token(title: str) -> Optional[str]:
    """
    Extract an episode marker such as "code:25-0412", "episode:12" or "part:3".

    Numeric values lose leading zeros so "Part 03" equals "Pt. 3".
    """
    cleaned = _clean_title(title)
    for kind, pattern in _EPISODE_PATTERNS:
        found = pattern.search(cleaned)
        if found:
            value = found.group(1)
            if value.isdigit():
                value = str(int(value))
            return f"{kind}:{value}"
    return None


def date_distance_days(date_a: Optional[datetime], date_b: Optional[datetime]) -> Optional[float]:
    if date_a is None or date_b is None:
        return None
    return abs((date_a - date_b).total_seconds()) / 86400.0


def date_proximity(distance_days: Optional[float], window_days: float = DEFAULT_DATE_WINDOW_DAYS) -> float:
    """1.0 within a day, linear decay to 0.0 at ``window_days``, 0.0 beyond."""
    if distance_days is None:
        return 0.0
    if distance_days <= FULL_DATE_SCORE_DAYS:
        return 1.0
    if distance_days >= window_days:
        return 0.0
    return (window_days - distance_days) / (window_days - FULL_DATE_SCORE_DAYS)


def looks_like_content(title: str) -> bool:
    """Keyword allow-list deciding whether a video is a real episode."""
    lowered = (title or "").lower()
    return any(keyword in lowered for keyword in CONTENT_KEYWORDS)


@dataclass(frozen=True)
class MatchScore:
    """Score of one pair with its per-signal breakdown."""

    total: float
    date_score: float
    title_score: float
    episode_score: float
    description_score: Optional[float]
    distance_days: Optional[float]
    episode_token: Optional[str]
    reason: str

    @property
    def accepted(self) -> bool:
        return self.total >= MATCH_THRESHOLD - 1e-9


def _describe(
    distance_days: Optional[float],
    date_score: float,
    title_score: float,
    episode_token: Optional[str],
    episode_score: float,
    description_score: Optional[float],
) -> str:
    parts = []
    if distance_days is None:
        parts.append("no date on one side (title-only)")
    elif date_score >= 1.0:
        parts.append("date within 1 day")
    elif date_score > 0:
        parts.append(f"date {distance_days:.1f} days apart ({date_score:.2f})")
    else:
        parts.append(f"date outside window ({distance_days:.1f} days)")
    parts.append(f"title similarity {title_score:.2f}")
    if episode_token and episode_score >= 1.0:
        parts.append(f"episode number {episode_token.split(':', 1)[1]} matches")
    if description_score is not None:
        parts.append(f"description similarity {description_score:.2f}")
    return "; ".join(parts)


def score_pair(
    title_a: str,
    date_a: Optional[datetime],
    description_a: Optional[str],
    title_b: str,
    date_b: Optional[datetime],
    description_b: Optional[str],
    window_days: float = DEFAULT_DATE_WINDOW_DAYS,
) -> MatchScore:
    """
    Score two episodes.

    The episode-number signal counts as full agreement only when both titles
    carry the same token; when neither title carries one, it follows the title
    similarity. The description signal follows the title similarity unless the
    title is weak, in which case the descriptions are compared.
    """
    distance = date_distance_days(date_a, date_b)
    title_score = title_similarity(title_a, title_b)

    token_a = extract_episode_token(title_a)
    token_b = extract_episode_token(title_b)
    if token_a and token_b:
        episode_score = 1.0 if token_a == token_b else 0.0
    elif token_a is None and token_b is None:
        episode_score = title_score
    else:
        episode_score = 0.0

    description_score = None
    if title_score < WEAK_TITLE_SIMILARITY:
        description_score = description_similarity(description_a, description_b)
        description_component = description_score
    else:
        description_component = title_score

    if distance is None:
        date_score = 0.0
        total = title_score
    else:
        date_score = date_proximity(distance, window_days)
        total = (
            DATE_WEIGHT * date_score
            + TITLE_WEIGHT * title_score
            + EPISODE_WEIGHT * episode_score
            + DESCRIPTION_WEIGHT * description_component
        )

    return MatchScore(
        total=round(min(1.0, total), 6),
        date_score=date_score,
        title_score=title_score,
        episode_score=episode_score,
        description_score=description_score,
        distance_days=distance,
        episode_token=token_a if token_a and token_a == token_b else None,
        reason=_describe(
            distance, date_score, title_score, token_a if token_a == token_b else None,
            episode_score, description_score,
        ),
    )
