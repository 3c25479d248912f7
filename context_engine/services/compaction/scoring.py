# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Importance scoring.

Each message is scored once when it is appended. The score ranks messages
for retention when the middle of a long conversation is trimmed: recent
user turns, tool-calling turns and messages mentioning errors or decisions
survive longer than chatter.
"""

from __future__ import annotations

import math
import re
from typing import Any

from context_engine.schemas.roles import MessageRole

MAX_IMPORTANCE = 10.0
MIN_IMPORTANCE = 0.0
AGE_DECAY = 10.0
USER_WEIGHT = 1.5
TOOL_CALL_WEIGHT = 2.0
KEYWORD_WEIGHT = 1.3

KEYWORD_PATTERN = re.compile(r"\b(error|bug|fix|critical|important|decision|warning)\b", re.IGNORECASE)


def score_message(msg: Any, position: int, log_length: int) -> float:
    """Compute the retention priority of a message.

    The message flagged as the session's original task always receives
    ``MAX_IMPORTANCE``. Every other message starts at ``1.0`` and is weighted
    by age, role, keywords and content length.

    Args:
        msg (Any): Message to score.
        position (int): Zero-based index of the message in the log.
        log_length (int): Length of the log including the message.

    Returns:
        float: Score in ``[0, 10]``.
    """
    if msg.metadata.original_task:
        return MAX_IMPORTANCE

    age = max(0, log_length - position)
    score = math.exp(-age / AGE_DECAY)

    if msg.role == MessageRole.USER:
        score *= USER_WEIGHT
    if msg.role == MessageRole.ASSISTANT and getattr(msg, "tool_calls", None):
        score *= TOOL_CALL_WEIGHT

    content = msg.content or ""
    if KEYWORD_PATTERN.search(content):
        score *= KEYWORD_WEIGHT
    if content:
        score *= 1 + math.log(len(content)) / 10

    return min(MAX_IMPORTANCE, max(MIN_IMPORTANCE, score))
