# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Tool result externalization.

Every tool output passes through ``ToolResultStore.process`` before it
becomes a message. Small outputs are returned unchanged. Larger ones are
wrapped, written to

    <sessions_dir>/<session_id>/tool_results/<tool_call_id>.txt

and replaced in the log by a preview plus a marker telling the model how
to read the rest with ``read_tool_result``. Offsets in the marker and in
chunk reads refer to the stored (wrapped) payload.
"""

from __future__ import annotations

import json
import logging
import shutil
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import List, Optional, Union

from context_engine.config import Settings, settings as default_settings
from context_engine.exceptions import (
    ExternalizationError,
    InvalidChunkRequestError,
    PersistenceError,
    ToolResultNotFoundError,
)
from context_engine.services.prompts.base import (
    TOOL_RESULT_INVALID_OFFSET,
    TOOL_RESULT_NOT_FOUND,
    TOOL_RESULT_SUGGESTIONS,
)
from context_engine.services.session.persistence import (
    atomic_write_text,
    read_json,
    read_text,
    validate_name,
)
from context_engine.services.tool_results.formatting import (
    build_fallback,
    build_marker,
    content_quality_warning,
    render_chunk,
    wrap_long_lines,
)
from context_engine.services.tool_results.fuzzy import resolve_id

module_logger = logging.getLogger(__name__)

RESULTS_DIRNAME = "tool_results"
PAYLOAD_SUFFIX = ".txt"
RECORD_SUFFIX = ".json"


@dataclass(frozen=True)
class ExternalizedResult:
    """A persisted tool result.

    Attributes:
        tool_call_id (str): Id the result is stored under.
        session_id (str): Owning session.
        storage_path (str): Payload path.
        total_length (int): Length of the original output.
        stored_length (int): Length of the stored (wrapped) payload.
        created_at (float): Unix time the payload was written.
    """

    tool_call_id: str
    session_id: str
    storage_path: str
    total_length: int
    stored_length: int
    created_at: float


@dataclass(frozen=True)
class RetrievalResult:
    """One chunk read from a persisted result.

    Attributes:
        tool_call_id (str): Id the chunk was read from.
        requested_id (str): Id the caller asked for.
        offset (int): Offset of the chunk in the stored payload.
        length (int): Length of ``content``.
        total_length (int): Length of the stored payload.
        content (str): Chunk text.
        has_more (bool): Whether content remains after the chunk.
        next_offset (Optional[int]): Offset of the next chunk.
    """

    tool_call_id: str
    requested_id: str
    offset: int
    length: int
    total_length: int
    content: str
    has_more: bool
    next_offset: Optional[int]

    @property
    def corrected(self) -> bool:
        """Whether the requested id was auto-corrected."""
        return self.tool_call_id != self.requested_id


class ToolResultStore:
    """Inline-or-persist policy and chunked retrieval for tool output.

    Args:
        sessions_dir (Optional[Union[str, Path]]): Root of session
            directories; defaults to ``SESSIONS_DIR``.
        config (Optional[Settings]): Settings supplying the size limits.
        logger (Optional[logging.Logger]): Logger for store events.
    """

    def __init__(
        self,
        sessions_dir: Optional[Union[str, Path]] = None,
        *,
        config: Optional[Settings] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        config = config or default_settings
        self.sessions_dir = Path(sessions_dir or config.SESSIONS_DIR).expanduser()
        self.inline_max = config.TOOL_RESULT_INLINE_MAX
        self.preview_size = config.TOOL_RESULT_PREVIEW_SIZE
        self.default_chunk = config.TOOL_RESULT_DEFAULT_CHUNK
        self.max_chunk = config.TOOL_RESULT_MAX_CHUNK
        self.wrap_width = config.TOOL_RESULT_WRAP_WIDTH
        self.fuzzy_max_distance = config.TOOL_RESULT_FUZZY_MAX_DISTANCE
        self.retention_seconds = config.TOOL_RESULT_RETENTION_SECONDS
        self.logger = logger or module_logger

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def results_dir(self, session_id: str) -> Path:
        return self.sessions_dir / validate_name(session_id, "session id") / RESULTS_DIRNAME

    def _payload_path(self, tool_call_id: str, session_id: str) -> Path:
        name = validate_name(tool_call_id, "tool call id")
        return self.results_dir(session_id) / f"{name}{PAYLOAD_SUFFIX}"

    def _record_path(self, tool_call_id: str, session_id: str) -> Path:
        name = validate_name(tool_call_id, "tool call id")
        return self.results_dir(session_id) / f"{name}{RECORD_SUFFIX}"

    # ------------------------------------------------------------------
    # Externalization
    # ------------------------------------------------------------------

    def process(self, tool_call_id: str, content: str, session_id: str) -> str:
        """Return ``content`` inline or persist it and return a marker.

        Args:
            tool_call_id (str): Call that produced the output.
            content (str): Raw tool output.
            session_id (str): Owning session.

        Returns:
            str: ``content`` unchanged when it fits inline; otherwise a
                preview with retrieval instructions, or truncated content
                with a warning if persisting failed.
        """
        if len(content) <= self.inline_max:
            self.logger.debug("Inline tool result %s (%d chars)", tool_call_id, len(content))
            return content

        wrapped = wrap_long_lines(content, self.wrap_width)
        try:
            record = self.persist(tool_call_id, content, session_id, wrapped=wrapped)
        except ExternalizationError as e:
            self.logger.warning("Falling back to truncated inline result for %s: %s", tool_call_id, e)
            return build_fallback(content, self.inline_max)

        self.logger.info(
            "Externalized tool result %s: %d chars (stored %d) at %s",
            tool_call_id,
            record.total_length,
            record.stored_length,
            record.storage_path,
        )
        return build_marker(
            tool_call_id=tool_call_id,
            preview=wrapped[: self.preview_size],
            total_length=record.total_length,
            stored_length=record.stored_length,
            chunk_length=self.default_chunk,
            width=self.wrap_width,
            warning=content_quality_warning(content, self.wrap_width),
        )

    def persist(
        self,
        tool_call_id: str,
        content: str,
        session_id: str,
        wrapped: Optional[str] = None,
    ) -> ExternalizedResult:
        """Write a result payload and its record.

        Args:
            tool_call_id (str): Id to store the result under.
            content (str): Original tool output.
            session_id (str): Owning session.
            wrapped (Optional[str]): Pre-wrapped payload; computed when
                omitted.

        Returns:
            ExternalizedResult: The stored record.

        Raises:
            ExternalizationError: If an id is not a safe file name or the
                payload could not be written.
        """
        try:
            payload_path = self._payload_path(tool_call_id, session_id)
            record_path = self._record_path(tool_call_id, session_id)
        except ValueError as e:
            raise ExternalizationError(str(e)) from e

        if wrapped is None:
            wrapped = wrap_long_lines(content, self.wrap_width)
        record = ExternalizedResult(
            tool_call_id=tool_call_id,
            session_id=session_id,
            storage_path=str(payload_path),
            total_length=len(content),
            stored_length=len(wrapped),
            created_at=time.time(),
        )
        try:
            atomic_write_text(payload_path, wrapped)
            atomic_write_text(record_path, json.dumps(asdict(record)))
        except PersistenceError as e:
            raise ExternalizationError(f"Failed to persist tool result {tool_call_id}: {e}") from e
        return record

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def _resolve(self, tool_call_id: str, session_id: str) -> str:
        if self.exists(tool_call_id, session_id):
            return tool_call_id
        match, suggestions = resolve_id(
            tool_call_id,
            self.list_results(session_id),
            self.fuzzy_max_distance,
        )
        if match is None:
            self.logger.warning("Tool result not found: %s in session %s", tool_call_id, session_id)
            raise ToolResultNotFoundError(tool_call_id, session_id, suggestions)
        self.logger.info("Auto-corrected tool call id %s -> %s", tool_call_id, match)
        return match

    def retrieve(
        self,
        tool_call_id: str,
        session_id: str,
        offset: int = 0,
        length: Optional[int] = None,
    ) -> RetrievalResult:
        """Read a chunk of a persisted result.

        Args:
            tool_call_id (str): Id of the result; a near miss is corrected
                when exactly one stored id is close enough.
            session_id (str): Owning session.
            offset (int): Start offset in the stored payload.
            length (Optional[int]): Chunk length, capped at the maximum
                chunk size.

        Returns:
            RetrievalResult: The chunk and continuation details.

        Raises:
            ToolResultNotFoundError: If no stored id matches.
            InvalidChunkRequestError: If ``offset`` is outside the payload
                or ``length`` is not positive.
        """
        length = self.default_chunk if length is None else length
        if length <= 0:
            raise InvalidChunkRequestError(tool_call_id, offset, 0, reason="length must be > 0")
        if length > self.max_chunk:
            self.logger.debug("Capping chunk length %d to %d", length, self.max_chunk)
            length = self.max_chunk

        resolved = self._resolve(tool_call_id, session_id)
        payload = read_text(self._payload_path(resolved, session_id))
        if payload is None:
            raise ToolResultNotFoundError(tool_call_id, session_id)

        total = len(payload)
        if offset < 0 or offset >= total:
            raise InvalidChunkRequestError(resolved, offset, total)

        chunk = payload[offset : offset + length]
        end = offset + len(chunk)
        has_more = end < total
        self.logger.debug(
            "Retrieved %s: offset=%d length=%d total=%d", resolved, offset, len(chunk), total
        )
        return RetrievalResult(
            tool_call_id=resolved,
            requested_id=tool_call_id,
            offset=offset,
            length=len(chunk),
            total_length=total,
            content=chunk,
            has_more=has_more,
            next_offset=end if has_more else None,
        )

    def read_tool_result(
        self,
        tool_call_id: str,
        session_id: str,
        offset: int = 0,
        length: Optional[int] = None,
    ) -> str:
        """Tool-facing chunk read that always returns text.

        Args:
            tool_call_id (str): Id of the result.
            session_id (str): Owning session.
            offset (int): Start offset.
            length (Optional[int]): Chunk length.

        Returns:
            str: The rendered chunk, or an explanation of what went wrong and
                how to retry.
        """
        length = self.default_chunk if length is None else length
        try:
            result = self.retrieve(tool_call_id, session_id, offset=offset, length=length)
        except ToolResultNotFoundError as e:
            text = TOOL_RESULT_NOT_FOUND.format(tool_call_id=tool_call_id)
            if e.suggestions:
                suggestions = "\n".join(f"- {s}" for s in e.suggestions)
                text += "\n\n" + TOOL_RESULT_SUGGESTIONS.format(suggestions=suggestions)
            return text
        except InvalidChunkRequestError as e:
            if e.total_length <= 0:
                return str(e)
            return TOOL_RESULT_INVALID_OFFSET.format(
                offset=e.offset,
                total_length=e.total_length,
                last_offset=e.total_length - 1,
                tool_call_id=e.tool_call_id,
                length=min(max(length, 1), self.max_chunk),
            )
        return render_chunk(
            tool_call_id=result.tool_call_id,
            content=result.content,
            offset=result.offset,
            total_length=result.total_length,
            has_more=result.has_more,
            next_offset=result.next_offset,
            length=min(length, self.max_chunk),
            requested_id=result.requested_id,
        )

    # ------------------------------------------------------------------
    # Inventory and deletion
    # ------------------------------------------------------------------

    def exists(self, tool_call_id: str, session_id: str) -> bool:
        try:
            return self._payload_path(tool_call_id, session_id).is_file()
        except ValueError:
            return False

    def list_results(self, session_id: str) -> List[str]:
        """Ids of all persisted results of a session, sorted."""
        try:
            directory = self.results_dir(session_id)
        except ValueError:
            return []
        if not directory.is_dir():
            return []
        return sorted(p.stem for p in directory.glob(f"*{PAYLOAD_SUFFIX}") if p.is_file())

    def get_record(self, tool_call_id: str, session_id: str) -> Optional[ExternalizedResult]:
        """Stored record of a result, or ``None`` if it does not exist."""
        if not self.exists(tool_call_id, session_id):
            return None
        payload_path = self._payload_path(tool_call_id, session_id)
        data = read_json(self._record_path(tool_call_id, session_id))
        if data is not None:
            try:
                return ExternalizedResult(**data)
            except TypeError:
                self.logger.warning("Ignoring malformed record for tool result %s", tool_call_id)
        payload = read_text(payload_path) or ""
        return ExternalizedResult(
            tool_call_id=tool_call_id,
            session_id=session_id,
            storage_path=str(payload_path),
            total_length=len(payload),
            stored_length=len(payload),
            created_at=payload_path.stat().st_mtime,
        )

    def delete(self, tool_call_id: str, session_id: str) -> bool:
        """Delete one persisted result.

        Returns:
            bool: ``True`` if a payload was removed; a missing result is not
                an error.

        Raises:
            PersistenceError: If the payload exists but cannot be removed.
        """
        if not self.exists(tool_call_id, session_id):
            return False
        try:
            self._payload_path(tool_call_id, session_id).unlink(missing_ok=True)
            self._record_path(tool_call_id, session_id).unlink(missing_ok=True)
        except OSError as e:
            self.logger.error("Failed to delete tool result %s: %s", tool_call_id, e)
            raise PersistenceError(f"Failed to delete tool result {tool_call_id}: {e}") from e
        self.logger.debug("Deleted tool result %s", tool_call_id)
        return True

    def delete_all(self, session_id: str) -> int:
        """Delete every persisted result of a session.

        Returns:
            int: Number of payloads removed.

        Raises:
            PersistenceError: If the results directory cannot be removed.
        """
        count = len(self.list_results(session_id))
        try:
            directory = self.results_dir(session_id)
        except ValueError:
            return 0
        if not directory.is_dir():
            return 0
        try:
            shutil.rmtree(directory)
        except OSError as e:
            self.logger.error("Failed to delete tool results of session %s: %s", session_id, e)
            raise PersistenceError(f"Failed to delete tool results directory: {e}") from e
        self.logger.info("Deleted %d tool results of session %s", count, session_id)
        return count

    def cleanup(self, session_id: str, max_age: Optional[float] = None) -> int:
        """Purge results older than ``max_age`` seconds.

        Args:
            session_id (str): Session to clean.
            max_age (Optional[float]): Age limit; defaults to the configured
                retention.

        Returns:
            int: Number of payloads removed.
        """
        max_age = self.retention_seconds if max_age is None else max_age
        cutoff = time.time() - max_age
        removed = 0
        for tool_call_id in self.list_results(session_id):
            try:
                mtime = self._payload_path(tool_call_id, session_id).stat().st_mtime
            except FileNotFoundError:
                continue
            if mtime < cutoff and self.delete(tool_call_id, session_id):
                removed += 1
        if removed:
            self.logger.info("Cleaned up %d expired tool results of session %s", removed, session_id)
        return removed
