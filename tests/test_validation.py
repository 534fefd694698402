"""Tests for chunk assembly and transcript validation."""

import pytest

from sermon_catalog.errors import TranscriptValidationError
from sermon_catalog.transcription.validation import (
    combine_chunks,
    dominant_word,
    is_nontrivial_transcript,
    validate_transcript,
)

SENTENCE = "Today we read from the book of James about patience in trials. "


class TestCombineChunks:
    """Test ordered assembly of chunk transcripts."""

    def test_index_order(self):
        assert combine_chunks({2: "third", 0: "first", 1: "second"}, 3) == "first\n\nsecond\n\nthird"

    def test_missing_indices_are_omitted(self):
        assert combine_chunks({0: "first", 2: "third"}, 4) == "first\n\nthird"

    def test_total_failure(self):
        with pytest.raises(TranscriptValidationError, match="Total failure"):
            combine_chunks({}, 5)


class TestValidateTranscript:
    """Test quality checks."""

    def test_accepts_normal_text(self):
        text = SENTENCE * 5
        assert validate_transcript("  " + text + "\n") == text.strip()

    def test_rejects_short_text(self):
        with pytest.raises(TranscriptValidationError, match="too short"):
            validate_transcript("Thank you.")

    def test_rejects_dominant_word(self):
        # 60% of the tokens are "you"
        text = " ".join(["you"] * 60 + [f"word{i}" for i in range(40)])
        with pytest.raises(TranscriptValidationError, match="'you'"):
            validate_transcript(text)

    def test_dominant_word_needs_more_than_ten_tokens(self):
        assert dominant_word("amen amen amen amen amen") is None

    def test_exactly_half_is_accepted(self):
        text = " ".join(["grace"] * 50 + [f"word{i}" for i in range(50)])
        assert validate_transcript(text) == text


class TestNontrivialTranscript:
    def test_threshold(self):
        assert not is_nontrivial_transcript(None)
        assert not is_nontrivial_transcript("x" * 100)
        assert is_nontrivial_transcript("x" * 101)
