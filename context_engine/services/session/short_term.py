# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Short-term recall buffer.

Keeps the last few ``{role, content}`` pairs of a session for cheap recall
without scanning the whole log.
"""

from __future__ import annotations

import re
from typing import List, Optional

from context_engine.schemas.roles import MessageRole
from context_engine.schemas.session import ShortTermEntry

_CONVERSATION_TAG = re.compile(r"\[conversation\](.*?)\[/conversation\]", re.DOTALL)


def strip_conversation_tags(text: Optional[str]) -> Optional[str]:
    """Unwrap ``[conversation]...[/conversation]`` blocks.

    Args:
        text (Optional[str]): Text to clean.

    Returns:
        Optional[str]: ``text`` with the tags removed and their content kept.
    """
    if text is None:
        return None
    return _CONVERSATION_TAG.sub(r"\1", text)


class ShortTermMemory:
    """Bounded FIFO of recent messages.

    Args:
        max_size (int): Number of entries kept; older entries are pruned.
        history (Optional[List[ShortTermEntry]]): Entries restored from a
            snapshot.
    """

    def __init__(self, max_size: int = 20, history: Optional[List[ShortTermEntry]] = None) -> None:
        self.max_size = max_size
        self._entries: List[ShortTermEntry] = list(history or [])
        self._prune()

    def __len__(self) -> int:
        return len(self._entries)

    def add_message(self, role: str, content: Optional[str]) -> None:
        """Record a message, dropping the oldest entries beyond ``max_size``."""
        self._entries.append(ShortTermEntry(role=role, content=strip_conversation_tags(content) or ""))
        self._prune()

    def get_context(self) -> List[ShortTermEntry]:
        return list(self._entries)

    def last_user_message(self, position: int = -1) -> Optional[ShortTermEntry]:
        """User entry by position among user entries (``-1`` is the latest).

        Args:
            position (int): Zero-based index, negative from the end.

        Returns:
            Optional[ShortTermEntry]: The entry, or ``None`` when out of range.
        """
        users = [e for e in self._entries if e.role == MessageRole.USER]
        try:
            return users[position]
        except IndexError:
            return None

    def _prune(self) -> None:
        if self.max_size >= 0 and len(self._entries) > self.max_size:
            self._entries = self._entries[-self.max_size :] if self.max_size else []
