# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Tests for settings and the derived context budget."""

import pytest

from context_engine.config import Settings
from context_engine.services.compaction.settings import CompactionSettings, ContextBudget


class TestSettings:
    """Tests for environment-driven settings."""

    def test_defaults(self):
        """Verify the documented defaults."""
        config = Settings(_env_file=None)
        assert config.TRIM_THRESHOLD_RATIO == 0.58
        assert config.TRIM_KEEP_RECENT == 10
        assert config.TRIM_MIDDLE_RETENTION == 0.3
        assert config.TRIM_MIN_MESSAGES == 15
        assert config.TOOL_RESULT_INLINE_MAX == 8192
        assert config.TOOL_RESULT_MAX_CHUNK == 32768
        assert config.TOKEN_ESTIMATOR == "heuristic"

    def test_env_override(self, monkeypatch):
        """Verify environment variables override defaults."""
        monkeypatch.setenv("CONTEXT_WINDOW_TOKENS", "200000")
        monkeypatch.setenv("TOKEN_ESTIMATOR", "tiktoken")
        config = Settings(_env_file=None)
        assert config.CONTEXT_WINDOW_TOKENS == 200000
        assert config.TOKEN_ESTIMATOR == "tiktoken"

    def test_invalid_estimator(self, monkeypatch):
        """Verify unknown estimator names are rejected."""
        monkeypatch.setenv("TOKEN_ESTIMATOR", "magic")
        with pytest.raises(ValueError):
            Settings(_env_file=None)


class TestContextBudget:
    """Tests for the trim threshold arithmetic."""

    def test_ratio_bound(self):
        """Verify a large window is limited by the ratio."""
        budget = ContextBudget(128_000, 16_000)
        assert budget.available_tokens == 112_000
        assert budget.trim_threshold == 74_240

    def test_reservation_bound(self):
        """Verify a small window is limited by the reservations."""
        budget = ContextBudget(10_000, 8_000)
        assert budget.trim_threshold == 2_000

    def test_never_negative(self):
        """Verify reservations beyond the window floor at zero."""
        budget = ContextBudget(4_000, 8_000, reserved_tool_schema_tokens=1_000)
        assert budget.available_tokens == 0
        assert budget.trim_threshold == 0


class TestCompactionSettings:
    """Tests for building compaction settings."""

    def test_from_settings(self):
        """Verify values are copied from application settings."""
        config = Settings(_env_file=None, TRIM_KEEP_RECENT=6, CONTEXT_WINDOW_TOKENS=32_000)
        compaction = CompactionSettings.from_settings(config)
        assert compaction.keep_recent == 6
        assert compaction.context_window_tokens == 32_000
        assert compaction.min_messages_to_trim == 15

    def test_budget_overrides(self):
        """Verify a model switch overrides the window and reservation."""
        compaction = CompactionSettings()
        budget = compaction.budget(context_window_tokens=10_000, max_response_tokens=8_000)
        assert budget.trim_threshold == 2_000
        assert compaction.budget().trim_threshold == 74_240
