# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Tool call / tool result pairing repair.

A session interrupted mid tool execution leaves an assistant turn whose
calls were never answered; trimming or manual edits can leave tool results
whose declaring turn is gone. Providers reject both shapes, so the whole
log is checked in both directions before it is used:

  forward   a declared call id has no result. The declaring assistant turn,
            the user turn immediately before it and any partial results for
            its other calls are removed.
  backward  a tool result has no earlier declaring call. It is removed.

A second result for an already answered call id is removed as well.

Problems are never raised. They are reported as ``IntegrityViolation``
records and the caller only shows a one-line notice to the user.
"""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Sequence, Set

from context_engine.models import Message
from context_engine.schemas.roles import MessageRole
from context_engine.services.prompts.base import REPAIR_NOTIFICATION

logger = logging.getLogger(__name__)

FORWARD = "forward"
BACKWARD = "backward"
DUPLICATE = "duplicate"


@dataclass(frozen=True)
class IntegrityViolation:
    """One pairing problem found by the repairer.

    Attributes:
        kind (str): ``"forward"``, ``"backward"`` or ``"duplicate"``.
        tool_call_id (str): Call id involved.
        index (int): Index of the offending message in the input log.
    """

    kind: str
    tool_call_id: str
    index: int


@dataclass
class RepairReport:
    """Result of a repair pass.

    Attributes:
        messages (List[Message]): The repaired log. The input list itself
            when nothing was removed.
        removed_count (int): Number of messages removed.
        violations (List[IntegrityViolation]): Problems found.
        notice (Optional[str]): One-line notice for the user when anything
            was removed.
    """

    messages: List[Message]
    removed_count: int = 0
    violations: List[IntegrityViolation] = field(default_factory=list)
    notice: Optional[str] = None

    @property
    def repaired(self) -> bool:
        return self.removed_count > 0


def repair_tool_use_result_pairing(messages: List[Message]) -> RepairReport:
    """Remove orphaned tool calls and tool results.

    Results are paired with declarations in log order, so a call id reused
    by a later assistant turn is matched independently: each result answers
    the oldest still-waiting declaration of its id.

    Args:
        messages (List[Message]): Conversation log to check.

    Returns:
        RepairReport: Cleaned log, removal count and violations.
    """
    if not messages:
        return RepairReport(messages=messages)

    # call id -> indices of assistant turns still waiting for that id
    waiting: Dict[str, Deque[int]] = defaultdict(deque)
    answered_ids: Set[str] = set()
    # assistant index -> indices of the results answering it
    answers: Dict[int, List[int]] = defaultdict(list)
    violations: List[IntegrityViolation] = []
    remove: Set[int] = set()

    for i, msg in enumerate(messages):
        if msg.role == MessageRole.ASSISTANT:
            for call_id in msg.tool_call_ids:
                waiting[call_id].append(i)
        elif msg.role == MessageRole.TOOL:
            call_id = msg.tool_call_id
            if waiting[call_id]:
                answers[waiting[call_id].popleft()].append(i)
                answered_ids.add(call_id)
            elif call_id in answered_ids:
                violations.append(IntegrityViolation(DUPLICATE, call_id, i))
                remove.add(i)
            else:
                violations.append(IntegrityViolation(BACKWARD, call_id, i))
                remove.add(i)

    orphaned = sorted(
        (assistant_idx, call_id) for call_id, queue in waiting.items() for assistant_idx in queue
    )
    for assistant_idx, call_id in orphaned:
        violations.append(IntegrityViolation(FORWARD, call_id, assistant_idx))
        remove.add(assistant_idx)
        remove.update(answers[assistant_idx])
        # The user turn that prompted the call belongs to the same exchange
        if assistant_idx > 0 and messages[assistant_idx - 1].role == MessageRole.USER:
            remove.add(assistant_idx - 1)

    if not remove:
        return RepairReport(messages=messages)

    for violation in violations:
        logger.debug(
            "Pairing violation: kind=%s tool_call_id=%s index=%d",
            violation.kind,
            violation.tool_call_id,
            violation.index,
        )
    repaired = [msg for i, msg in enumerate(messages) if i not in remove]
    logger.info(
        "Repaired tool call pairing: removed %d messages (%d violations)",
        len(remove),
        len(violations),
    )
    return RepairReport(
        messages=repaired,
        removed_count=len(remove),
        violations=violations,
        notice=REPAIR_NOTIFICATION,
    )


def find_violations(messages: Sequence[Message]) -> List[IntegrityViolation]:
    """Report pairing problems without changing anything.

    Args:
        messages (Sequence[Message]): Conversation log to check.

    Returns:
        List[IntegrityViolation]: Problems found, empty for a valid log.
    """
    return repair_tool_use_result_pairing(list(messages)).violations
