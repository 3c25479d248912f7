# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Conversation role enumeration."""

from enum import Enum


class MessageRole(str, Enum):
    """Message role enumeration.

    Attributes:
        SYSTEM (str): System prompt or engine-injected notice.
        USER (str): User turn.
        ASSISTANT (str): Model turn, optionally carrying tool calls.
        TOOL (str): Tool result answering one tool call.
    """

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"
