# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Message store: the owned conversation log of one session.

The store is the only writer of the log. Callers append messages and read
an immutable view; trimming and repair replace the log wholesale. Every
appended message is scored, mirrored into the short-term buffer and the
thread archive, and the log is trimmed as soon as its estimated size
crosses the budget threshold.

Snapshots live at ``<sessions_dir>/<session_id>.json`` and are written
atomically. Loading repairs tool call pairing before the log is used and
keeps a one-line notice for the user when anything was removed.
"""

from __future__ import annotations

import logging
import os
import time
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError

from context_engine.config import Settings, settings as default_settings
from context_engine.exceptions import PersistenceError
from context_engine.models import Message, MessageMetadata, ToolCall, build_message
from context_engine.schemas.roles import MessageRole
from context_engine.schemas.session import BillingRequest, BillingState, Discovery, SessionSnapshot
from context_engine.services.compaction.repair import RepairReport, repair_tool_use_result_pairing
from context_engine.services.compaction.scoring import score_message
from context_engine.services.compaction.settings import CompactionSettings, ContextBudget
from context_engine.services.compaction.tokens import TokenEstimator, get_estimator
from context_engine.services.compaction.trimming import TrimReport, trim_messages
from context_engine.services.prompts.base import NO_OUTPUT
from context_engine.services.session.archive import ThreadArchive
from context_engine.services.session.lock import SessionLock
from context_engine.services.session.persistence import atomic_write_text, read_json, validate_name
from context_engine.services.session.short_term import ShortTermMemory, strip_conversation_tags

module_logger = logging.getLogger(__name__)

SNAPSHOT_SUFFIX = ".json"


class MessageStore:
    """Ordered conversation log for a single session.

    Args:
        session_id (Optional[str]): Session id; a new one is generated when
            omitted.
        sessions_dir (Optional[Union[str, Path]]): Snapshot directory;
            defaults to ``SESSIONS_DIR``.
        working_directory (Optional[str]): Directory the session runs in;
            defaults to the current directory.
        compaction (Optional[CompactionSettings]): Trimming configuration.
        estimator (Optional[TokenEstimator]): Token estimator.
        config (Optional[Settings]): Settings used for defaults.
        logger (Optional[logging.Logger]): Logger for store events.
    """

    def __init__(
        self,
        session_id: Optional[str] = None,
        sessions_dir: Optional[Union[str, Path]] = None,
        *,
        working_directory: Optional[str] = None,
        compaction: Optional[CompactionSettings] = None,
        estimator: Optional[TokenEstimator] = None,
        config: Optional[Settings] = None,
        logger: Optional[logging.Logger] = None,
        snapshot: Optional[SessionSnapshot] = None,
    ) -> None:
        config = config or default_settings
        self._session_id = validate_name(session_id, "session id") if session_id else str(uuid.uuid4())
        self.sessions_dir = Path(sessions_dir or config.SESSIONS_DIR).expanduser()
        self.compaction = compaction or CompactionSettings.from_settings(config)
        self.estimator = estimator or get_estimator(config)
        self.logger = logger or module_logger

        snapshot = snapshot or SessionSnapshot(working_directory=working_directory or os.getcwd())
        self._history: List[Message] = list(snapshot.history)
        self.working_directory = snapshot.working_directory
        self.created_at = snapshot.created_at
        self.selected_model = snapshot.selected_model
        self.billing: BillingState = snapshot.billing
        self.context_files: List[str] = list(snapshot.context_files)
        self.stateful_markers: List[Any] = list(snapshot.stateful_markers)
        self.api_config: Dict[str, Any] = dict(snapshot.api_config)
        self.discoveries: List[Discovery] = list(snapshot.discoveries)
        self._last_provider_response_id = snapshot.last_provider_response_id
        self._short_term = ShortTermMemory(max_size=config.SHORT_TERM_MAX_SIZE, history=snapshot.stm)
        self._archive = ThreadArchive.from_dict(snapshot.archive)

        self._context_window_tokens: Optional[int] = None
        self._max_response_tokens: Optional[int] = None
        self._repair_notification: Optional[str] = None
        self._original_task_assigned = self._has_user_turn()

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def file(self) -> Path:
        """Snapshot path of this session."""
        return self.sessions_dir / f"{self._session_id}{SNAPSHOT_SUFFIX}"

    @property
    def archive(self) -> ThreadArchive:
        return self._archive

    @property
    def short_term(self) -> ShortTermMemory:
        return self._short_term

    @property
    def repair_notification(self) -> Optional[str]:
        """One-line notice when the log was repaired, else ``None``."""
        return self._repair_notification

    @property
    def last_provider_response_id(self) -> Optional[str]:
        return self._last_provider_response_id

    def __len__(self) -> int:
        return len(self._history)

    def _has_user_turn(self) -> bool:
        if any(m.role == MessageRole.USER for m in self._history):
            return True
        return any(
            entry.get("role") == MessageRole.USER.value
            for entry in self._archive.get_thread(self._session_id)
        )

    # ------------------------------------------------------------------
    # Log access
    # ------------------------------------------------------------------

    def append(
        self,
        role: Union[MessageRole, str],
        content: Optional[str],
        *,
        tool_calls: Optional[List[Union[ToolCall, Dict[str, Any]]]] = None,
        tool_call_id: Optional[str] = None,
        tool_name: Optional[str] = None,
        source: str = "primary",
    ) -> Message:
        """Append a message to the log.

        Args:
            role (Union[MessageRole, str]): Message role.
            content (Optional[str]): Message text. ``[conversation]`` tags
                are stripped; empty tool output becomes ``"(no output)"``.
            tool_calls (Optional[List[Union[ToolCall, Dict[str, Any]]]]):
                Calls declared by an assistant turn.
            tool_call_id (Optional[str]): Call answered by a tool message.
            tool_name (Optional[str]): Name of the tool that produced a
                tool message.
            source (str): Origin of the message.

        Returns:
            Message: The stored message.

        Raises:
            pydantic.ValidationError: If the message violates its role's
                invariants (e.g. a tool message without ``tool_call_id``).
        """
        role_value = role.value if isinstance(role, MessageRole) else str(role)
        content = strip_conversation_tags(content)
        if role_value == MessageRole.TOOL and not content:
            content = NO_OUTPUT

        original_task = role_value == MessageRole.USER and not self._original_task_assigned
        metadata = MessageMetadata(
            session_id=self._session_id,
            source=source,
            unix_timestamp=time.time(),
            provider_response_id=(
                self._last_provider_response_id if role_value == MessageRole.ASSISTANT else None
            ),
            original_task=original_task,
        )
        msg = build_message(
            role_value,
            content,
            metadata=metadata,
            tool_calls=tool_calls if role_value == MessageRole.ASSISTANT else None,
            tool_call_id=tool_call_id if role_value == MessageRole.TOOL else None,
            tool_name=tool_name if role_value == MessageRole.TOOL else None,
        )
        position = len(self._history)
        # Scored as the newest turn, so the age term is the same for every message
        msg = msg.model_copy(update={"importance": score_message(msg, position, position + 1)})

        self._history.append(msg)
        if original_task:
            self._original_task_assigned = True
        self.logger.debug(
            "Appended %s message %s to session %s (importance %.3f)",
            role_value,
            msg.id,
            self._session_id,
            msg.importance,
        )

        self._short_term.add_message(role_value, msg.content)
        if not self._archive.has_thread(self._session_id):
            self._archive.create_thread(self._session_id)
        self._archive.add_to_thread(self._session_id, msg)

        size = self.get_conversation_size()
        threshold = self.budget().trim_threshold
        if size > threshold:
            self.logger.debug(
                "Context size %d exceeds threshold %d, trimming session %s",
                size,
                threshold,
                self._session_id,
            )
            self.trim_context()
        return msg

    def get_history(self) -> Tuple[Message, ...]:
        """Read-only view of the active log."""
        return tuple(self._history)

    def get_messages_for_transmission(self) -> Tuple[Message, ...]:
        """Repaired view of the log, ready to send to a provider.

        Repairs and persists the log first when pairing is broken.

        Returns:
            Tuple[Message, ...]: The active log.
        """
        self._apply_repair(repair_tool_use_result_pairing(self._history))
        return tuple(self._history)

    def get_conversation_size(self) -> int:
        """Estimated token size of the active log."""
        return self.estimator.estimate_messages(self._history)

    def recall(self, query: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Search everything ever appended to this session, trimmed or not.

        Args:
            query (str): Case-insensitive text to look for.
            limit (int): Maximum number of matches.

        Returns:
            List[Dict[str, Any]]: Matching archived messages, newest first.
        """
        return self._archive.search(self._session_id, query, limit=limit)

    # ------------------------------------------------------------------
    # Budget and trimming
    # ------------------------------------------------------------------

    def configure_model(
        self,
        model: Optional[str],
        context_window_tokens: Optional[int] = None,
        max_response_tokens: Optional[int] = None,
    ) -> None:
        """Record the selected model and its limits for the next trim.

        Args:
            model (Optional[str]): Model name.
            context_window_tokens (Optional[int]): Model context window.
            max_response_tokens (Optional[int]): Tokens reserved for replies.
        """
        self.selected_model = model
        if context_window_tokens is not None:
            self._context_window_tokens = context_window_tokens
        if max_response_tokens is not None:
            self._max_response_tokens = max_response_tokens

    def budget(self) -> ContextBudget:
        """Budget for the currently configured model."""
        return self.compaction.budget(self._context_window_tokens, self._max_response_tokens)

    def trim_context(self) -> TrimReport:
        """Trim the log now and persist the result.

        Returns:
            TrimReport: Trim statistics; ``trimmed`` is ``False`` for short
                conversations.
        """
        report = trim_messages(
            self._history,
            settings=self.compaction,
            budget=self.budget(),
            estimator=self.estimator,
            session_id=self._session_id,
        )
        if not report.trimmed:
            return report

        self._history = report.messages
        self.logger.info(
            "Session %s trimmed: archived %d messages (%d -> %d tokens)",
            self._session_id,
            report.archived_count,
            report.tokens_before,
            report.tokens_after,
        )
        try:
            self.save()
        except PersistenceError as e:
            self.logger.warning("Failed to persist trimmed session %s: %s", self._session_id, e)
        return report

    # ------------------------------------------------------------------
    # Provider bookkeeping
    # ------------------------------------------------------------------

    def set_provider_response_id(self, response_id: Optional[str]) -> None:
        """Remember the latest provider response id for later assistant turns."""
        self._last_provider_response_id = response_id

    def record_api_usage(
        self,
        usage: Optional[Dict[str, Any]],
        model: Optional[str] = None,
        provider: Optional[str] = None,
        multiplier: float = 0.0,
    ) -> None:
        """Add one provider request to the billing counters.

        Args:
            usage (Optional[Dict[str, Any]]): ``prompt_tokens``,
                ``completion_tokens`` and optionally ``total_tokens``.
                Anything that is not a mapping is ignored.
            model (Optional[str]): Model that served the request.
            provider (Optional[str]): Provider name.
            multiplier (float): Premium-request multiplier charged.
        """
        if not isinstance(usage, dict):
            return
        prompt_tokens = int(usage.get("prompt_tokens") or 0)
        completion_tokens = int(usage.get("completion_tokens") or 0)
        total_tokens = int(usage.get("total_tokens") or prompt_tokens + completion_tokens)

        billing = self.billing
        billing.total_prompt_tokens += prompt_tokens
        billing.total_completion_tokens += completion_tokens
        billing.total_tokens += total_tokens
        billing.total_requests += 1
        if model:
            billing.model = model
        if multiplier:
            billing.multiplier = multiplier
            billing.total_premium_requests += multiplier
        billing.requests.append(
            BillingRequest(
                timestamp=time.time(),
                model=model or "unknown",
                provider=provider,
                multiplier=multiplier,
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=total_tokens,
            )
        )
        self.logger.debug(
            "Recorded API usage: model=%s multiplier=%sx tokens=%d",
            model or "unknown",
            multiplier,
            total_tokens,
        )

    def get_billing_summary(self) -> Dict[str, Any]:
        """Cumulative usage for this session."""
        billing = self.billing
        return {
            "total_requests": billing.total_requests,
            "total_premium_requests": billing.total_premium_requests,
            "total_prompt_tokens": billing.total_prompt_tokens,
            "total_completion_tokens": billing.total_completion_tokens,
            "total_tokens": billing.total_tokens,
            "requests": [r.model_dump() for r in billing.requests],
        }

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def snapshot(self) -> SessionSnapshot:
        """Everything persisted for this session."""
        return SessionSnapshot(
            history=list(self._history),
            working_directory=self.working_directory,
            created_at=self.created_at,
            selected_model=self.selected_model,
            billing=self.billing,
            context_files=list(self.context_files),
            stateful_markers=list(self.stateful_markers),
            last_provider_response_id=self._last_provider_response_id,
            api_config=dict(self.api_config),
            stm=self._short_term.get_context(),
            archive=self._archive.to_dict(),
            discoveries=list(self.discoveries),
        )

    def save(self) -> Path:
        """Atomically write the session snapshot.

        Returns:
            Path: The snapshot path.

        Raises:
            PersistenceError: If the snapshot could not be written. The
                previous snapshot is left intact.
        """
        path = atomic_write_text(self.file, self.snapshot().to_json())
        self.logger.debug("Saved session %s (%d messages)", self._session_id, len(self._history))
        return path

    @classmethod
    def load(
        cls,
        session_id: str,
        sessions_dir: Optional[Union[str, Path]] = None,
        **kwargs: Any,
    ) -> Optional["MessageStore"]:
        """Load a session and repair its log.

        Args:
            session_id (str): Session to load.
            sessions_dir (Optional[Union[str, Path]]): Snapshot directory.
            **kwargs (Any): Forwarded to the constructor.

        Returns:
            Optional[MessageStore]: The store, or ``None`` if the session
                does not exist or its snapshot is unreadable.
        """
        log = kwargs.get("logger") or module_logger
        try:
            validate_name(session_id, "session id")
        except ValueError:
            log.warning("Refusing to load session with invalid id %r", session_id)
            return None

        config = kwargs.get("config") or default_settings
        directory = Path(sessions_dir or config.SESSIONS_DIR).expanduser()
        data = read_json(directory / f"{session_id}{SNAPSHOT_SUFFIX}")
        if data is None:
            log.debug("No session snapshot for %s", session_id)
            return None
        if "ltm" in data:
            log.info("Migrating legacy long-term memory in session %s", session_id)
        try:
            snapshot = SessionSnapshot.model_validate(data)
        except ValidationError as e:
            log.warning("Malformed session snapshot %s: %s", session_id, e)
            return None

        store = cls(session_id, directory, snapshot=snapshot, **kwargs)
        store._apply_repair(repair_tool_use_result_pairing(store._history))
        if store.selected_model:
            log.info("Restored model from session %s: %s", session_id, store.selected_model)
        return store

    def delete(self) -> bool:
        """Remove the session snapshot.

        Returns:
            bool: ``True`` if a snapshot was removed.

        Raises:
            PersistenceError: If the snapshot exists but cannot be removed.
        """
        try:
            self.file.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            self.logger.error("Failed to delete session snapshot %s: %s", self.file, e)
            raise PersistenceError(f"Failed to delete session snapshot: {e}") from e
        self.logger.info("Deleted session snapshot %s", self.file)
        return True

    def lock(self, timeout: float = 0.0) -> SessionLock:
        """Advisory lock for this session, to be used as a context manager."""
        return SessionLock(self._session_id, self.sessions_dir, timeout=timeout)

    def _apply_repair(self, report: RepairReport) -> None:
        if not report.repaired:
            return
        self._history = report.messages
        self._repair_notification = report.notice
        self.logger.info(
            "Session %s repaired: removed %d messages with incomplete tool execution",
            self._session_id,
            report.removed_count,
        )
        try:
            self.save()
        except PersistenceError as e:
            self.logger.warning("Failed to save repaired session %s: %s", self._session_id, e)
