# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Thread archive: the long-term recall tier.

Every message appended to a session is mirrored into the session's thread,
including messages later trimmed from the active log, so trimmed context can
be recalled by explicit query.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ThreadArchive:
    """Append-only message threads keyed by thread id.

    Threads hold plain JSON-compatible dicts so the archive serialises with
    the session snapshot unchanged.

    Args:
        threads (Optional[Dict[str, List[Dict[str, Any]]]]): Existing threads
            restored from a snapshot.
    """

    def __init__(self, threads: Optional[Dict[str, List[Dict[str, Any]]]] = None) -> None:
        self._threads: Dict[str, List[Dict[str, Any]]] = {
            thread_id: list(messages) for thread_id, messages in (threads or {}).items()
        }

    def create_thread(self, thread_id: str) -> None:
        """Create an empty thread, replacing any existing one."""
        logger.debug("Creating archive thread %s", thread_id)
        self._threads[thread_id] = []

    def has_thread(self, thread_id: str) -> bool:
        return thread_id in self._threads

    def add_to_thread(self, thread_id: str, message: Any) -> bool:
        """Append a message to a thread, creating the thread when missing.

        Args:
            thread_id (str): Thread to append to.
            message (Any): A message model, a dict, or a JSON object string.

        Returns:
            bool: ``False`` if ``message`` could not be decoded.
        """
        if isinstance(message, BaseModel):
            entry = message.model_dump(mode="json", exclude_none=True)
        elif isinstance(message, str):
            try:
                entry = json.loads(message)
            except json.JSONDecodeError as e:
                logger.warning("Failed to decode archived message for %s: %s", thread_id, e)
                return False
        else:
            entry = message
        if not isinstance(entry, dict):
            logger.warning("Ignoring non-object archived message for %s", thread_id)
            return False

        thread = self._threads.setdefault(thread_id, [])
        thread.append(entry)
        logger.debug("Archived message in thread %s (total: %d)", thread_id, len(thread))
        return True

    def get_thread(self, thread_id: str) -> List[Dict[str, Any]]:
        """Messages in a thread, oldest first; empty for an unknown thread."""
        return list(self._threads.get(thread_id, []))

    def list_threads(self) -> List[str]:
        return sorted(self._threads)

    def summarize_thread(self, thread_id: str) -> Dict[str, Any]:
        """Message count and latest message of a thread.

        Args:
            thread_id (str): Thread to summarise.

        Returns:
            Dict[str, Any]: ``thread_id``, ``message_count`` and
                ``latest_message`` (``None`` for an empty thread).
        """
        thread = self._threads.get(thread_id, [])
        return {
            "thread_id": thread_id,
            "message_count": len(thread),
            "latest_message": thread[-1] if thread else None,
        }

    def search(self, thread_id: str, query: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Case-insensitive substring search over message content.

        Args:
            thread_id (str): Thread to search.
            query (str): Text to look for.
            limit (int): Maximum number of matches returned.

        Returns:
            List[Dict[str, Any]]: Matching messages, most recent first.
        """
        needle = query.strip().lower()
        if not needle or limit <= 0:
            return []
        matches: List[Dict[str, Any]] = []
        for entry in reversed(self._threads.get(thread_id, [])):
            content = entry.get("content")
            if isinstance(content, str) and needle in content.lower():
                matches.append(entry)
                if len(matches) >= limit:
                    break
        return matches

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        return {thread_id: list(messages) for thread_id, messages in self._threads.items()}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, List[Dict[str, Any]]]]) -> "ThreadArchive":
        return cls(threads=data)
