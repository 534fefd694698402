"""
Chunk assembly and transcript quality checks.

A transcript is rejected when it is too short or when a single word makes up
more than half of its tokens (more than 10 tokens), the typical shape of a
hallucinated ASR loop ("you you you ...").
"""

import re
from collections import Counter
from typing import Mapping, Optional

from sermon_catalog.errors import TranscriptValidationError
from sermon_catalog.logger import setup_logging


logger = setup_logging(logger_name="worker", log_file="logs/worker.log")

MIN_TRANSCRIPT_CHARS = 100
MIN_CHUNK_TRANSCRIPT_CHARS = 50
DOMINANT_WORD_RATIO = 0.5
DOMINANT_WORD_MIN_TOKENS = 10

_WORD = re.compile(r"[\w']+")


def is_nontrivial_transcript(text: Optional[str]) -> bool:
    """True for transcripts long enough to count as already generated."""
    return bool(text) and len(text.strip()) > MIN_TRANSCRIPT_CHARS


def combine_chunks(completed: Mapping[int, str], total: Optional[int] = None) -> str:
    """
    Join chunk transcripts in index order.

    Indices that never completed are omitted (with a warning) rather than
    padded.

    Raises:
        TranscriptValidationError: If no chunk completed at all
    """
    texts = {i: t.strip() for i, t in completed.items() if t and t.strip()}
    if not texts:
        raise TranscriptValidationError(
            f"Total failure: none of the {total if total is not None else '?'} chunks "
            f"could be transcribed"
        )

    if total is not None:
        missing = [i for i in range(total) if i not in texts]
        if missing:
            logger.warning(
                f"Combining {len(texts)}/{total} chunks; missing indices: {missing}"
            )
    return "\n\n".join(texts[i] for i in sorted(texts))


def dominant_word(text: str) -> Optional[tuple[str, float]]:
    """
    Most frequent word and its share of all tokens, or None when the text has
    too few tokens for the heuristic to apply.
    """
    tokens = [t.lower() for t in _WORD.findall(text)]
    if len(tokens) <= DOMINANT_WORD_MIN_TOKENS:
        return None
    word, count = Counter(tokens).most_common(1)[0]
    return word, count / len(tokens)


def validate_transcript(text: str, min_chars: int = MIN_TRANSCRIPT_CHARS) -> str:
    """
    Check an assembled transcript and return it trimmed.

    Raises:
        TranscriptValidationError: On a too-short or pathologically repetitive text
    """
    trimmed = (text or "").strip()
    if len(trimmed) < min_chars:
        raise TranscriptValidationError(
            f"Transcript too short: {len(trimmed)} characters (minimum {min_chars})"
        )

    dominant = dominant_word(trimmed)
    if dominant is not None and dominant[1] > DOMINANT_WORD_RATIO:
        word, ratio = dominant
        raise TranscriptValidationError(
            f"Transcript rejected: the word '{word}' makes up {ratio:.0%} of all words "
            f"(likely a corrupted transcription)"
        )
    return trimmed
