# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Tests for token estimation, truncation and chunking."""

from unittest.mock import MagicMock, patch

import pytest

from context_engine.config import Settings
from context_engine.services.compaction.tokens import (
    MESSAGE_OVERHEAD_TOKENS,
    TOOL_CALL_OVERHEAD_TOKENS,
    HeuristicTokenEstimator,
    TiktokenEstimator,
    estimate_message_tokens,
    estimate_messages_tokens,
    estimate_tokens,
    get_estimator,
    truncate_to_tokens,
)

# ---------------------------------------------------------------------------
# Heuristic counting
# ---------------------------------------------------------------------------


class TestHeuristicCount:
    """Tests for the character-ratio heuristic."""

    def test_empty_text(self):
        """Verify empty text estimates to zero tokens."""
        assert estimate_tokens("") == 0

    def test_rounds_up(self):
        """Verify partial tokens round up."""
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2

    def test_custom_ratio(self):
        """Verify the ratio is configurable."""
        assert HeuristicTokenEstimator(chars_per_token=2).count("abcd") == 2

    def test_rejects_non_positive_ratio(self):
        """Verify a zero ratio is rejected."""
        with pytest.raises(ValueError):
            HeuristicTokenEstimator(chars_per_token=0)

    def test_estimate_dispatches_on_type(self, make_message):
        """Verify estimate accepts text, messages and None."""
        est = HeuristicTokenEstimator()
        msgs = [make_message("user", "x" * 8)]
        assert est.estimate("x" * 8) == 2
        assert est.estimate(msgs) == 2 + MESSAGE_OVERHEAD_TOKENS
        assert est.estimate(None) == 0


# ---------------------------------------------------------------------------
# Message estimates
# ---------------------------------------------------------------------------


class TestMessageEstimates:
    """Tests for per-message and per-list estimates."""

    def test_plain_message_overhead(self, make_message):
        """Verify a message costs its content plus a fixed overhead."""
        msg = make_message("user", "x" * 8)
        assert estimate_message_tokens(msg) == 2 + MESSAGE_OVERHEAD_TOKENS

    def test_tool_calls_counted(self, make_message):
        """Verify tool call name and arguments are counted with overhead."""
        msg = make_message(
            "assistant",
            None,
            tool_calls=[{"id": "c1", "name": "read", "arguments": '{"a":1}'}],
        )
        # "read" + '{"a":1}' = 11 chars -> 3 tokens
        assert estimate_message_tokens(msg) == MESSAGE_OVERHEAD_TOKENS + 3 + TOOL_CALL_OVERHEAD_TOKENS

    def test_list_sums_messages(self, make_message):
        """Verify list estimates are the sum of message estimates."""
        msgs = [make_message("user", "x" * 8), make_message("assistant", "y" * 4)]
        assert estimate_messages_tokens(msgs) == (2 + 3) + (1 + 3)

    def test_empty_list(self):
        """Verify an empty list estimates to zero."""
        assert estimate_messages_tokens([]) == 0


# ---------------------------------------------------------------------------
# Truncation and chunking
# ---------------------------------------------------------------------------


class TestTruncate:
    """Tests for budget-bounded truncation."""

    def test_fitting_text_unchanged(self):
        """Verify text within budget is returned unchanged."""
        assert truncate_to_tokens("hello", 10) == "hello"

    def test_prefix_within_budget(self):
        """Verify the result is a prefix whose estimate fits the budget."""
        text = "a" * 100
        result = truncate_to_tokens(text, 10)
        assert text.startswith(result)
        assert estimate_tokens(result) <= 10
        assert len(result) == 40

    def test_prefers_newline_boundary(self):
        """Verify truncation cuts at a late newline when one exists."""
        text = ("x" * 9 + "\n") * 10
        result = truncate_to_tokens(text, 10)
        assert result == text[:39]
        assert not result.endswith("\n")

    def test_zero_budget(self):
        """Verify a non-positive budget yields empty text."""
        assert truncate_to_tokens("hello", 0) == ""

    def test_suffix_fits_in_budget(self):
        """Verify a suffix is appended and counted against the budget."""
        est = HeuristicTokenEstimator()
        result = est.truncate("a" * 100, 10, suffix="[cut]")
        assert result == "a" * 32 + "[cut]"
        assert est.count(result) <= 10


class TestSplitIntoChunks:
    """Tests for line-based chunking."""

    def test_small_text_single_chunk(self):
        """Verify text within the limit is one chunk."""
        assert HeuristicTokenEstimator().split_into_chunks("abc", 10) == ["abc"]

    def test_splits_on_lines(self):
        """Verify chunks break on line boundaries."""
        chunks = HeuristicTokenEstimator().split_into_chunks("aaaa\nbbbb\ncccc", 2)
        assert chunks == ["aaaa\nbbbb", "cccc"]


# ---------------------------------------------------------------------------
# Estimator selection
# ---------------------------------------------------------------------------


class TestGetEstimator:
    """Tests for the configured estimator factory."""

    def test_default_is_heuristic(self):
        """Verify the heuristic estimator is the default."""
        est = get_estimator(Settings(TOKEN_ESTIMATOR="heuristic", CHARS_PER_TOKEN=3.0))
        assert isinstance(est, HeuristicTokenEstimator)
        assert est.chars_per_token == 3.0

    def test_tiktoken_selected(self):
        """Verify the tiktoken estimator is built when configured."""
        est = get_estimator(Settings(TOKEN_ESTIMATOR="tiktoken", TIKTOKEN_ENCODING="cl100k_base"))
        assert isinstance(est, TiktokenEstimator)
        assert est.encoding_name == "cl100k_base"


class TestTiktokenEstimator:
    """Tests for the tiktoken-backed estimator."""

    def test_encoding_loaded_lazily_once(self):
        """Verify the encoding is loaded on first count and reused."""
        encoding = MagicMock()
        encoding.encode.return_value = [1, 2, 3]
        with patch("tiktoken.get_encoding", return_value=encoding) as get_encoding:
            est = TiktokenEstimator("o200k_base")
            get_encoding.assert_not_called()
            assert est.count("hello world") == 3
            assert est.count("again") == 3
        get_encoding.assert_called_once_with("o200k_base")

    def test_empty_text_skips_encoding(self):
        """Verify empty text does not load the encoding."""
        with patch("tiktoken.get_encoding") as get_encoding:
            assert TiktokenEstimator().count("") == 0
        get_encoding.assert_not_called()

    def test_truncate_uses_encoding(self):
        """Verify truncation searches for a prefix within the token budget."""
        encoding = MagicMock()
        encoding.encode.side_effect = lambda text, disallowed_special=(): list(text)
        with patch("tiktoken.get_encoding", return_value=encoding):
            est = TiktokenEstimator()
            assert est.truncate("abcdefghij", 4) == "abcd"
