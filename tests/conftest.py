# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Shared test fixtures for the context engine test suite."""

from typing import Any, Dict, List, Optional

import pytest

from context_engine.config import Settings
from context_engine.models import (
    AssistantMessage,
    Message,
    MessageMetadata,
    SystemMessage,
    ToolMessage,
    UserMessage,
)
from context_engine.services.compaction.settings import CompactionSettings
from context_engine.services.session.store import MessageStore
from context_engine.services.tool_results.store import ToolResultStore

# ---------------------------------------------------------------------------
# Message factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_message():
    """Factory fixture for creating messages of any role."""

    def _factory(
        role: str = "user",
        content: Optional[str] = "hello",
        importance: float = 0.0,
        original_task: bool = False,
        tool_calls: Optional[List[Dict[str, Any]]] = None,
        tool_call_id: Optional[str] = None,
    ) -> Message:
        metadata = MessageMetadata(original_task=original_task)
        if role == "system":
            return SystemMessage(content=content, importance=importance, metadata=metadata)
        if role == "user":
            return UserMessage(content=content, importance=importance, metadata=metadata)
        if role == "assistant":
            return AssistantMessage(
                content=content, tool_calls=tool_calls, importance=importance, metadata=metadata
            )
        return ToolMessage(
            content=content, tool_call_id=tool_call_id, importance=importance, metadata=metadata
        )

    return _factory


@pytest.fixture
def tool_exchange(make_message):
    """Factory fixture for an assistant tool call followed by its result."""

    def _factory(call_id: str, importance: float = 0.0, result: str = "ok") -> List[Message]:
        return [
            make_message(
                "assistant",
                None,
                importance=importance,
                tool_calls=[{"id": call_id, "name": "read_file", "arguments": "{}"}],
            ),
            make_message("tool", result, importance=importance, tool_call_id=call_id),
        ]

    return _factory


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


@pytest.fixture
def sessions_dir(tmp_path):
    """Empty sessions directory inside the test's tmp_path."""
    return tmp_path / "sessions"


@pytest.fixture
def engine_settings(sessions_dir):
    """Default settings pointed at the temporary sessions directory."""
    return Settings(SESSIONS_DIR=str(sessions_dir), TOKEN_ESTIMATOR="heuristic")


@pytest.fixture
def message_store(sessions_dir, engine_settings):
    """Factory fixture for creating MessageStore instances."""

    def _factory(
        session_id: Optional[str] = "session-1",
        compaction: Optional[CompactionSettings] = None,
    ) -> MessageStore:
        return MessageStore(
            session_id,
            sessions_dir,
            working_directory="/work",
            compaction=compaction,
            config=engine_settings,
        )

    return _factory


@pytest.fixture
def tool_results(sessions_dir, engine_settings):
    """ToolResultStore backed by the temporary sessions directory."""
    return ToolResultStore(sessions_dir, config=engine_settings)
