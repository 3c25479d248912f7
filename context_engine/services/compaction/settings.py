# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Context management settings.

All thresholds are ratios of the context window, so the same configuration
behaves sensibly for an 8k and a 1M token model.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from context_engine.config import Settings


@dataclass(frozen=True)
class ContextBudget:
    """Token budget derived from the current model configuration.

    Not persisted: the store rebuilds it on every trim so a model switch
    takes effect immediately.

    Attributes:
        context_window_tokens (int): Model context window.
        max_response_tokens (int): Tokens reserved for the reply.
        reserved_tool_schema_tokens (int): Tokens reserved for tool schemas.
        threshold_ratio (float): Share of the window at which trimming starts.
    """

    context_window_tokens: int
    max_response_tokens: int = 0
    reserved_tool_schema_tokens: int = 0
    threshold_ratio: float = 0.58

    @property
    def available_tokens(self) -> int:
        """Tokens left for the conversation once reservations are removed.

        Returns:
            int: ``window - max_response - reserved``, never negative.
        """
        return max(
            0,
            self.context_window_tokens - self.max_response_tokens - self.reserved_tool_schema_tokens,
        )

    @property
    def trim_threshold(self) -> int:
        """Estimated size above which the conversation is trimmed.

        Returns:
            int: The smaller of ``window * threshold_ratio`` and
                ``available_tokens``.
        """
        return max(0, min(int(self.context_window_tokens * self.threshold_ratio), self.available_tokens))


@dataclass
class CompactionSettings:
    """All trimming-related configuration in one place.

    Attributes:
        context_window_tokens (int): Maximum context window size in tokens.
        max_response_tokens (int): Tokens reserved for the model's reply.
        reserved_tool_schema_tokens (int): Tokens reserved for tool schemas.
        trim_threshold_ratio (float): Context usage ratio that triggers a
            trim.
        keep_recent (int): Number of most recent messages kept verbatim.
        middle_retention (float): Share of middle messages kept, chosen by
            importance.
        min_messages_to_trim (int): Conversations with this many messages or
            fewer are never trimmed.
        min_recent (int): Smallest recent window allowed while enforcing the
            budget.
    """

    context_window_tokens: int = 128_000
    max_response_tokens: int = 16_000
    reserved_tool_schema_tokens: int = 0
    trim_threshold_ratio: float = 0.58
    keep_recent: int = 10
    middle_retention: float = 0.3
    min_messages_to_trim: int = 15
    min_recent: int = 2

    @classmethod
    def from_settings(cls, settings: Settings) -> "CompactionSettings":
        """Build from the application settings.

        Args:
            settings (Settings): Loaded application settings.

        Returns:
            CompactionSettings: Settings carrying the configured values.
        """
        return cls(
            context_window_tokens=settings.CONTEXT_WINDOW_TOKENS,
            max_response_tokens=settings.MAX_RESPONSE_TOKENS,
            reserved_tool_schema_tokens=settings.RESERVED_TOOL_SCHEMA_TOKENS,
            trim_threshold_ratio=settings.TRIM_THRESHOLD_RATIO,
            keep_recent=settings.TRIM_KEEP_RECENT,
            middle_retention=settings.TRIM_MIDDLE_RETENTION,
            min_messages_to_trim=settings.TRIM_MIN_MESSAGES,
            min_recent=settings.TRIM_MIN_RECENT,
        )

    def budget(
        self,
        context_window_tokens: Optional[int] = None,
        max_response_tokens: Optional[int] = None,
    ) -> ContextBudget:
        """Derive the budget for the current model.

        Args:
            context_window_tokens (Optional[int]): Override for the window.
            max_response_tokens (Optional[int]): Override for the reply
                reservation.

        Returns:
            ContextBudget: Budget used by a single trim pass.
        """
        return ContextBudget(
            context_window_tokens=context_window_tokens or self.context_window_tokens,
            max_response_tokens=(
                self.max_response_tokens if max_response_tokens is None else max_response_tokens
            ),
            reserved_tool_schema_tokens=self.reserved_tool_schema_tokens,
            threshold_ratio=self.trim_threshold_ratio,
        )
