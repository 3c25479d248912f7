# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Tests for importance scoring."""

import math

import pytest

from context_engine.services.compaction.scoring import MAX_IMPORTANCE, score_message


class TestScoreMessage:
    """Tests for score_message weighting rules."""

    def test_original_task_is_maximal(self, make_message):
        """Verify the original task always scores the maximum."""
        msg = make_message("user", "fix it", original_task=True)
        assert score_message(msg, position=50, log_length=51) == MAX_IMPORTANCE

    def test_base_score(self, make_message):
        """Verify the base score combines age decay and length."""
        msg = make_message("assistant", "ok")
        expected = math.exp(-1 / 10) * (1 + math.log(2) / 10)
        assert score_message(msg, position=0, log_length=1) == pytest.approx(expected)

    def test_user_weight(self, make_message):
        """Verify user messages are weighted 1.5x."""
        user = score_message(make_message("user", "hello"), 3, 4)
        assistant = score_message(make_message("assistant", "hello"), 3, 4)
        assert user / assistant == pytest.approx(1.5)

    def test_tool_call_weight(self, make_message):
        """Verify assistant turns calling tools are weighted 2x."""
        calling = make_message("assistant", "x", tool_calls=[{"id": "c1", "name": "ls"}])
        plain = make_message("assistant", "x")
        assert score_message(calling, 3, 4) / score_message(plain, 3, 4) == pytest.approx(2.0)

    def test_keyword_weight(self, make_message):
        """Verify keyword matches are weighted 1.3x, case-insensitively."""
        flagged = score_message(make_message("assistant", "an ERROR here"), 3, 4)
        plain = score_message(make_message("assistant", "an apple here"), 3, 4)
        assert flagged / plain == pytest.approx(1.3)

    def test_keyword_requires_word_boundary(self, make_message):
        """Verify keywords inside other words do not match."""
        embedded = score_message(make_message("assistant", "prefixed"), 3, 4)
        plain = score_message(make_message("assistant", "abcdefgh"), 3, 4)
        assert embedded == pytest.approx(plain)

    def test_older_messages_score_lower(self, make_message):
        """Verify age decays the score."""
        msg = make_message("assistant", "same content")
        assert score_message(msg, 0, 20) < score_message(msg, 19, 20)

    def test_empty_content_skips_length_factor(self, make_message):
        """Verify empty content contributes no length factor."""
        msg = make_message("assistant", None, tool_calls=[{"id": "c1", "name": "ls"}])
        assert score_message(msg, 0, 1) == pytest.approx(math.exp(-0.1) * 2.0)

    def test_ordinary_scores_stay_below_original_task(self, make_message):
        """Verify even heavily weighted messages score below the original task."""
        msg = make_message(
            "assistant",
            "critical error " * 50_000,
            tool_calls=[{"id": "c1", "name": "ls"}],
        )
        score = score_message(msg, 9, 10)
        assert 0.0 <= score < MAX_IMPORTANCE
