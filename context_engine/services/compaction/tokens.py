# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Token estimation utilities.

The default estimator is a deterministic character-ratio heuristic: cheap,
stable across runs and independent of any provider tokenizer. A tiktoken
estimator can be selected instead through ``TOKEN_ESTIMATOR="tiktoken"``.

Message estimates add a fixed per-message overhead for the role envelope,
and each tool call contributes its name, its serialised arguments and a
fixed structural overhead.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from typing import Any, Iterable, List, Optional, Sequence, Union

from context_engine.config import Settings, settings as default_settings

CHARS_PER_TOKEN = 4.0
MESSAGE_OVERHEAD_TOKENS = 3
TOOL_CALL_OVERHEAD_TOKENS = 10

logger = logging.getLogger(__name__)


class TokenEstimator(ABC):
    """Approximates token counts for text and message lists."""

    @abstractmethod
    def count(self, text: str) -> int:
        """Estimate the token count of ``text``.

        Args:
            text (str): Text to estimate.

        Returns:
            int: Estimated token count, ``0`` for empty text.
        """

    def estimate(self, value: Union[str, Sequence[Any], None]) -> int:
        """Estimate a string or a sequence of messages.

        Args:
            value (Union[str, Sequence[Any], None]): Text or messages.

        Returns:
            int: Estimated token count.
        """
        if value is None:
            return 0
        if isinstance(value, str):
            return self.count(value)
        return self.estimate_messages(value)

    def estimate_message(self, msg: Any) -> int:
        """Estimate a single message including role and tool-call overhead.

        Args:
            msg (Any): A message model.

        Returns:
            int: Estimated token count.
        """
        total = MESSAGE_OVERHEAD_TOKENS
        if msg.content:
            total += self.count(msg.content)
        for tc in getattr(msg, "tool_calls", None) or []:
            total += self.count(tc.name + tc.arguments_text())
            total += TOOL_CALL_OVERHEAD_TOKENS
        return total

    def estimate_messages(self, messages: Iterable[Any]) -> int:
        """Sum message estimates.

        Args:
            messages (Iterable[Any]): Messages to estimate.

        Returns:
            int: Estimated total token count.
        """
        return sum(self.estimate_message(m) for m in messages)

    def _max_prefix_chars(self, text: str, max_tokens: int) -> int:
        """Longest prefix length whose estimate fits ``max_tokens``."""
        lo, hi = 0, len(text)
        while lo < hi:
            mid = (lo + hi + 1) // 2
            if self.count(text[:mid]) <= max_tokens:
                lo = mid
            else:
                hi = mid - 1
        return lo

    def truncate(self, text: str, max_tokens: int, *, suffix: str = "") -> str:
        """Return a prefix of ``text`` whose estimate is within ``max_tokens``.

        Prefers cutting at a newline inside the last 20% of the kept region.
        ``suffix`` is appended only when it fits in the budget as well.

        Args:
            text (str): Text to truncate.
            max_tokens (int): Token budget for the result.
            suffix (str): Optional marker appended after truncation.

        Returns:
            str: ``text`` unchanged when it already fits, otherwise the
                truncated prefix (plus ``suffix`` when it fits).
        """
        if max_tokens <= 0:
            return ""
        if self.count(text) <= max_tokens:
            return text

        suffix_tokens = self.count(suffix) if suffix else 0
        if suffix_tokens >= max_tokens:
            suffix, suffix_tokens = "", 0

        keep = self._max_prefix_chars(text, max_tokens - suffix_tokens)
        cut = keep
        last_newline = text.rfind("\n", 0, keep)
        if last_newline > keep * 0.8:
            cut = last_newline
        return text[:cut] + suffix

    def split_into_chunks(self, text: str, chunk_limit: int) -> List[str]:
        """Split ``text`` on line boundaries into chunks within ``chunk_limit``.

        A single line larger than the limit forms its own chunk.

        Args:
            text (str): Text to split.
            chunk_limit (int): Maximum estimated tokens per chunk.

        Returns:
            List[str]: Chunks in order; ``[text]`` when it already fits.
        """
        if self.count(text) <= chunk_limit:
            return [text]

        chunks: List[str] = []
        current: List[str] = []
        current_tokens = 0
        for line in text.split("\n"):
            line_tokens = self.count(line)
            if current and current_tokens + line_tokens > chunk_limit:
                chunks.append("\n".join(current))
                current, current_tokens = [], 0
            current.append(line)
            current_tokens += line_tokens
        if current:
            chunks.append("\n".join(current))
        return chunks


class HeuristicTokenEstimator(TokenEstimator):
    """Character-count heuristic: ``ceil(len(text) / chars_per_token)``."""

    def __init__(self, chars_per_token: float = CHARS_PER_TOKEN) -> None:
        if chars_per_token <= 0:
            msg = "chars_per_token must be positive"
            raise ValueError(msg)
        self.chars_per_token = chars_per_token

    def count(self, text: str) -> int:
        if not text:
            return 0
        return int(math.ceil(len(text) / self.chars_per_token))

    def _max_prefix_chars(self, text: str, max_tokens: int) -> int:
        keep = min(len(text), int(max_tokens * self.chars_per_token))
        while keep > 0 and self.count(text[:keep]) > max_tokens:
            keep -= 1
        return keep


class TiktokenEstimator(TokenEstimator):
    """Counts tokens with a tiktoken encoding.

    The encoding is loaded on first use; loading may download the BPE ranks.
    """

    def __init__(self, encoding_name: str = "o200k_base") -> None:
        self.encoding_name = encoding_name
        self._encoding: Optional[Any] = None

    @property
    def encoding(self) -> Any:
        if self._encoding is None:
            import tiktoken

            self._encoding = tiktoken.get_encoding(self.encoding_name)
            logger.debug("Loaded tiktoken encoding %s", self.encoding_name)
        return self._encoding

    def count(self, text: str) -> int:
        if not text:
            return 0
        return len(self.encoding.encode(text, disallowed_special=()))


def get_estimator(config: Optional[Settings] = None) -> TokenEstimator:
    """Build the estimator selected in the settings.

    Args:
        config (Optional[Settings]): Settings to read; defaults to the global
            settings.

    Returns:
        TokenEstimator: The configured estimator.
    """
    config = config or default_settings
    if config.TOKEN_ESTIMATOR == "tiktoken":
        return TiktokenEstimator(config.TIKTOKEN_ENCODING)
    return HeuristicTokenEstimator(config.CHARS_PER_TOKEN)


_default_estimator = HeuristicTokenEstimator()


def estimate_tokens(text: str) -> int:
    """Estimate tokens for ``text`` with the default heuristic.

    Args:
        text (str): Text to estimate.

    Returns:
        int: Estimated token count.
    """
    return _default_estimator.count(text)


def estimate_message_tokens(msg: Any) -> int:
    """Estimate a single message with the default heuristic."""
    return _default_estimator.estimate_message(msg)


def estimate_messages_tokens(messages: Iterable[Any]) -> int:
    """Estimate a list of messages with the default heuristic."""
    return _default_estimator.estimate_messages(messages)


def truncate_to_tokens(text: str, max_tokens: int) -> str:
    """Truncate ``text`` to ``max_tokens`` with the default heuristic."""
    return _default_estimator.truncate(text, max_tokens)
