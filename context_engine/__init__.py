# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Context engine: conversation memory and context window management.

    store = MessageStore(sessions_dir="~/.agent/sessions")
    store.append("system", system_prompt)
    store.append("user", "Fix the failing test in parser.py")

    results = ToolResultStore(sessions_dir="~/.agent/sessions")
    text = results.process(call.id, raw_output, store.session_id)
    store.append("tool", text, tool_call_id=call.id)

    store.save()
    resumed = MessageStore.load(store.session_id, sessions_dir="~/.agent/sessions")
"""

from context_engine.models import (
    AssistantMessage,
    Message,
    MessageMetadata,
    SystemMessage,
    ToolCall,
    ToolMessage,
    UserMessage,
    build_message,
)
from context_engine.schemas.roles import MessageRole
from context_engine.services.session.store import MessageStore
from context_engine.services.tool_results.store import ToolResultStore

__all__ = [
    "AssistantMessage",
    "Message",
    "MessageMetadata",
    "MessageRole",
    "MessageStore",
    "SystemMessage",
    "ToolCall",
    "ToolMessage",
    "ToolResultStore",
    "UserMessage",
    "build_message",
]
