# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Importance-based context trimming.

The log is partitioned into three parts:

  system   every system prompt; always kept (earlier trim notices excluded)
  recent   the last ``keep_recent`` messages; always kept verbatim
  middle   everything in between; only the most important share survives

Retention works on units rather than single messages: an assistant turn
that calls tools and the tool results answering it are kept or archived
together, so trimming never produces an orphaned pair. The first user turn
of the session is pinned.

After the base pass the result is checked against the budget. While it is
still over the threshold, the weakest kept middle unit and then the oldest
recent unit are archived, down to ``min_recent`` messages. If that is still
not enough the report is flagged ``budget_exceeded``.

Archived messages are only removed from the active log; the store mirrored
them into the archive when they were appended.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set

from context_engine.models import Message, MessageMetadata, SystemMessage
from context_engine.schemas.roles import MessageRole
from context_engine.services.compaction.scoring import score_message
from context_engine.services.compaction.settings import CompactionSettings, ContextBudget
from context_engine.services.compaction.tokens import HeuristicTokenEstimator, TokenEstimator
from context_engine.services.prompts.base import TRIM_NOTICE_TEMPLATE

logger = logging.getLogger(__name__)


@dataclass
class TrimReport:
    """Result of a trim pass.

    Attributes:
        messages (List[Message]): The new active log.
        archived (List[Message]): Messages removed from the active log.
        tokens_before (int): Estimated size before trimming.
        tokens_after (int): Estimated size after trimming.
        threshold (int): Budget threshold the pass aimed for.
        budget_exceeded (bool): ``True`` when the result is still over the
            threshold after every allowed removal.
        trimmed (bool): ``False`` when the pass was a no-op.
    """

    messages: List[Message]
    archived: List[Message] = field(default_factory=list)
    tokens_before: int = 0
    tokens_after: int = 0
    threshold: int = 0
    budget_exceeded: bool = False
    trimmed: bool = False

    @property
    def archived_count(self) -> int:
        return len(self.archived)


@dataclass
class _Unit:
    """Messages that must be kept or archived together."""

    indices: List[int]
    importance: float = 0.0
    pinned: bool = False

    @property
    def first(self) -> int:
        return self.indices[0]

    def __len__(self) -> int:
        return len(self.indices)


def is_trim_notice(msg: Message) -> bool:
    """Whether ``msg`` is a notice injected by a previous trim."""
    return msg.role == MessageRole.SYSTEM and msg.metadata.trim_notice


def group_units(messages: Sequence[Message], indices: Sequence[int]) -> List[_Unit]:
    """Group message indices into retention units.

    A tool message joins the unit of the assistant turn declaring its call
    id. Tool messages without a declaring turn form units of their own.

    Args:
        messages (Sequence[Message]): Full log.
        indices (Sequence[int]): Indices to group, in log order.

    Returns:
        List[_Unit]: Units ordered by their first message.
    """
    units: List[_Unit] = []
    owner: Dict[str, _Unit] = {}
    for idx in indices:
        msg = messages[idx]
        if msg.role == MessageRole.TOOL and msg.tool_call_id in owner:
            owner[msg.tool_call_id].indices.append(idx)
            continue
        unit = _Unit(indices=[idx])
        units.append(unit)
        for call_id in msg.tool_call_ids:
            owner[call_id] = unit
    return units


def _unit_importance(messages: Sequence[Message], unit: _Unit, log_length: int) -> float:
    scores = []
    for idx in unit.indices:
        msg = messages[idx]
        if is_trim_notice(msg):
            scores.append(score_message(msg, idx, log_length))
        else:
            scores.append(msg.importance)
    return max(scores)


def _build_notice(archived: int, keep_recent: int, session_id: Optional[str]) -> SystemMessage:
    return SystemMessage(
        content=TRIM_NOTICE_TEMPLATE.format(archived=archived, keep_recent=keep_recent),
        metadata=MessageMetadata(session_id=session_id, trim_notice=True),
    )


def trim_messages(
    messages: Sequence[Message],
    settings: Optional[CompactionSettings] = None,
    budget: Optional[ContextBudget] = None,
    estimator: Optional[TokenEstimator] = None,
    session_id: Optional[str] = None,
) -> TrimReport:
    """Trim the log to its most important messages.

    Args:
        messages (Sequence[Message]): Current active log.
        settings (Optional[CompactionSettings]): Trimming configuration.
        budget (Optional[ContextBudget]): Budget for this pass; derived from
            ``settings`` when omitted.
        estimator (Optional[TokenEstimator]): Token estimator; heuristic by
            default.
        session_id (Optional[str]): Session id recorded on the trim notice.

    Returns:
        TrimReport: The new log and trim statistics. Conversations with
            ``min_messages_to_trim`` messages or fewer are returned
            unchanged.
    """
    settings = settings or CompactionSettings()
    budget = budget or settings.budget()
    estimator = estimator or HeuristicTokenEstimator()
    threshold = budget.trim_threshold

    sizes = [estimator.estimate_message(m) for m in messages]
    tokens_before = sum(sizes)

    if len(messages) <= settings.min_messages_to_trim:
        return TrimReport(
            messages=list(messages),
            tokens_before=tokens_before,
            tokens_after=tokens_before,
            threshold=threshold,
        )

    log_length = len(messages)
    system_idx = [i for i, m in enumerate(messages) if m.role == MessageRole.SYSTEM and not is_trim_notice(m)]
    system_set = set(system_idx)
    rest = [i for i in range(log_length) if i not in system_set]

    units = group_units(messages, rest)
    for unit in units:
        unit.importance = _unit_importance(messages, unit, log_length)
        unit.pinned = any(messages[i].metadata.original_task for i in unit.indices)

    # Recent window: whole units taken from the tail until keep_recent is reached
    recent: List[_Unit] = []
    recent_count = 0
    for unit in sorted(units, key=lambda u: max(u.indices), reverse=True):
        if recent_count >= settings.keep_recent:
            break
        recent.append(unit)
        recent_count += len(unit)
    recent_ids = {id(u) for u in recent}
    middle = [u for u in units if id(u) not in recent_ids]

    middle_count = sum(len(u) for u in middle)
    quota = int(middle_count * settings.middle_retention)

    kept: List[_Unit] = [u for u in middle if u.pinned]
    kept_count = sum(len(u) for u in kept)
    candidates = sorted(
        (u for u in middle if not u.pinned),
        key=lambda u: (u.importance, u.first),
        reverse=True,
    )
    for unit in candidates:
        if kept_count + len(unit) <= quota:
            kept.append(unit)
            kept_count += len(unit)

    def active_indices() -> Set[int]:
        active = set(system_idx)
        for unit in kept + recent:
            active.update(unit.indices)
        return active

    def total_tokens(active: Set[int]) -> int:
        archived = log_length - len(active)
        notice_tokens = 0
        if archived:
            notice = _build_notice(archived, sum(len(u) for u in recent), session_id)
            notice_tokens = estimator.estimate_message(notice)
        return sum(sizes[i] for i in active) + notice_tokens

    active = active_indices()
    tokens_after = total_tokens(active)
    while tokens_after > threshold:
        droppable = [u for u in kept if not u.pinned]
        if droppable:
            weakest = min(droppable, key=lambda u: (u.importance, u.first))
            kept.remove(weakest)
        else:
            recent_size = sum(len(u) for u in recent)
            oldest = None
            for unit in sorted(recent, key=lambda u: u.first):
                if not unit.pinned and recent_size - len(unit) >= settings.min_recent:
                    oldest = unit
                    break
            if oldest is None:
                break
            recent.remove(oldest)
        active = active_indices()
        tokens_after = total_tokens(active)

    budget_exceeded = tokens_after > threshold
    if budget_exceeded:
        logger.warning(
            "Context still over budget after trimming: %d > %d tokens (%d messages kept)",
            tokens_after,
            threshold,
            len(active),
        )

    archived_msgs = [messages[i] for i in range(log_length) if i not in active]
    if not archived_msgs:
        return TrimReport(
            messages=list(messages),
            tokens_before=tokens_before,
            tokens_after=tokens_before,
            threshold=threshold,
            budget_exceeded=budget_exceeded,
        )

    recent_size = sum(len(u) for u in recent)
    notice = _build_notice(len(archived_msgs), recent_size, session_id)
    system_msgs = [messages[i] for i in system_idx]
    notice_position = len(system_msgs)
    notice = notice.model_copy(update={"importance": score_message(notice, notice_position, len(active) + 1)})

    retained = sorted(i for u in kept + recent for i in u.indices)
    trimmed = system_msgs + [notice] + [messages[i] for i in retained]

    logger.info(
        "Trimmed context: %d -> %d messages (%d -> %d tokens, threshold %d), archived %d",
        log_length,
        len(trimmed),
        tokens_before,
        tokens_after,
        threshold,
        len(archived_msgs),
    )

    return TrimReport(
        messages=trimmed,
        archived=archived_msgs,
        tokens_before=tokens_before,
        tokens_after=tokens_after,
        threshold=threshold,
        budget_exceeded=budget_exceeded,
        trimmed=True,
    )
