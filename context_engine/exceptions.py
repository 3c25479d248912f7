# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Exceptions raised by the context engine."""

from typing import List, Optional


class ContextEngineError(Exception):
    """Base class for all engine errors."""


class PersistenceError(ContextEngineError):
    """A snapshot or payload could not be written, renamed or read."""


class ExternalizationError(PersistenceError):
    """A large tool result could not be persisted to disk."""


class ToolResultNotFoundError(ContextEngineError, LookupError):
    """No persisted tool result matches the requested id.

    Attributes:
        tool_call_id (str): The id that was requested.
        session_id (str): Session that was searched.
        suggestions (List[str]): Closest stored ids, best first.
    """

    def __init__(
        self,
        tool_call_id: str,
        session_id: str,
        suggestions: Optional[List[str]] = None,
    ) -> None:
        self.tool_call_id = tool_call_id
        self.session_id = session_id
        self.suggestions = list(suggestions or [])
        message = f"Tool result not found: {tool_call_id} in session {session_id}"
        if self.suggestions:
            message += f" (did you mean: {', '.join(self.suggestions)})"
        super().__init__(message)


class InvalidChunkRequestError(ContextEngineError, ValueError):
    """A chunk request falls outside the stored payload.

    Attributes:
        tool_call_id (str): Resolved id of the stored result.
        offset (int): Requested offset.
        total_length (int): Length of the stored payload.
    """

    def __init__(self, tool_call_id: str, offset: int, total_length: int, reason: str = "") -> None:
        self.tool_call_id = tool_call_id
        self.offset = offset
        self.total_length = total_length
        super().__init__(
            reason or f"Invalid offset {offset} for result with total length {total_length}"
        )


class SessionLockedError(ContextEngineError):
    """The session is held by another process."""
