# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Conversation message models.

``Message`` is a union discriminated on ``role``. Role-specific fields live
only on the variant that owns them (``tool_calls`` on assistant turns,
``tool_call_id`` on tool results) and are validated at construction. All
variants are frozen; the store derives changed copies with ``model_copy``.
"""

import json
import uuid
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

from context_engine.schemas.roles import MessageRole

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def new_turn_id() -> str:
    """Return a fresh unique turn id."""
    return str(uuid.uuid4())


def utc_timestamp() -> str:
    """Return the current UTC time in ISO-8601 form."""
    return datetime.now(timezone.utc).strftime(TIMESTAMP_FORMAT)


class ToolCall(BaseModel):
    """Single tool invocation declared by an assistant turn.

    Accepts both the flat ``{id, name, arguments}`` shape and the provider's
    nested ``{id, type, function: {name, arguments}}`` shape.

    Attributes:
        id (str): Call id that the answering tool message must carry.
        name (str): Name of the tool to invoke.
        arguments (Union[str, Dict[str, Any]]): JSON-encoded or parsed
            arguments.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    arguments: Union[str, Dict[str, Any]] = "{}"

    @model_validator(mode="before")
    @classmethod
    def _flatten_function(cls, data: Any) -> Any:
        """Unwrap ``function: {name, arguments}`` into top-level fields."""
        if isinstance(data, dict) and isinstance(data.get("function"), dict):
            function = data["function"]
            return {
                "id": data.get("id"),
                "name": function.get("name", ""),
                "arguments": function.get("arguments", "{}"),
            }
        return data

    @field_validator("id")
    @classmethod
    def _id_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("tool call id must not be empty")
        return value

    def arguments_text(self) -> str:
        """Arguments as the JSON text sent to the provider.

        Returns:
            str: ``arguments`` unchanged when already a string, otherwise its
                JSON encoding.
        """
        if isinstance(self.arguments, str):
            return self.arguments
        return json.dumps(self.arguments, ensure_ascii=False, sort_keys=True)


class MessageMetadata(BaseModel):
    """Bookkeeping attached to every stored message.

    Attributes:
        session_id (Optional[str]): Owning session.
        source (str): Origin of the message (``primary``, ``subagent``, ...).
        unix_timestamp (Optional[float]): Creation time in unix seconds.
        provider_response_id (Optional[str]): Provider response that produced
            an assistant turn, when known.
        original_task (bool): Set on the first user turn of the session.
        trim_notice (bool): Set on notices injected by the trimmer.
    """

    model_config = ConfigDict(frozen=True)

    session_id: Optional[str] = None
    source: str = "primary"
    unix_timestamp: Optional[float] = None
    provider_response_id: Optional[str] = None
    original_task: bool = False
    trim_notice: bool = False


class _MessageBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_turn_id)
    content: Optional[str] = None
    timestamp: str = Field(default_factory=utc_timestamp)
    importance: float = 0.0
    metadata: MessageMetadata = Field(default_factory=MessageMetadata)

    @property
    def tool_call_ids(self) -> List[str]:
        """Ids of the tool calls this message declares."""
        return []

    def _allows_empty_content(self) -> bool:
        return False

    @model_validator(mode="after")
    def _require_content(self) -> "_MessageBase":
        if not self.content and not self._allows_empty_content():
            raise ValueError(f"{self.role} message requires non-empty content")  # type: ignore[attr-defined]
        return self


class SystemMessage(_MessageBase):
    """System prompt or engine notice."""

    role: Literal["system"] = "system"


class UserMessage(_MessageBase):
    """User turn."""

    role: Literal["user"] = "user"


class AssistantMessage(_MessageBase):
    """Model turn.

    Content may be empty only while the turn is calling tools.
    """

    role: Literal["assistant"] = "assistant"
    tool_calls: Optional[List[ToolCall]] = None

    @property
    def tool_call_ids(self) -> List[str]:
        return [tc.id for tc in self.tool_calls or []]

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    def _allows_empty_content(self) -> bool:
        return self.has_tool_calls

    @field_validator("tool_calls")
    @classmethod
    def _unique_call_ids(cls, value: Optional[List[ToolCall]]) -> Optional[List[ToolCall]]:
        if value:
            ids = [tc.id for tc in value]
            if len(ids) != len(set(ids)):
                raise ValueError(f"duplicate tool call ids: {ids}")
        return value


class ToolMessage(_MessageBase):
    """Tool result answering exactly one tool call."""

    role: Literal["tool"] = "tool"
    tool_call_id: str
    tool_name: Optional[str] = None

    @field_validator("tool_call_id")
    @classmethod
    def _call_id_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("tool message requires tool_call_id")
        return value


Message = Annotated[
    Union[SystemMessage, UserMessage, AssistantMessage, ToolMessage],
    Field(discriminator="role"),
]

MESSAGE_ADAPTER: TypeAdapter = TypeAdapter(Message)
MESSAGE_LIST_ADAPTER: TypeAdapter = TypeAdapter(List[Message])


def build_message(role: Union[MessageRole, str], content: Optional[str], **fields: Any) -> Message:
    """Validate and build the message variant for ``role``.

    Args:
        role (Union[MessageRole, str]): Role of the message.
        content (Optional[str]): Message text.
        **fields (Any): Remaining message fields (``tool_calls``,
            ``tool_call_id``, ``metadata``, ...).

    Returns:
        Message: The validated variant.

    Raises:
        pydantic.ValidationError: If the fields violate the role's invariants.
    """
    role_value = role.value if isinstance(role, MessageRole) else str(role)
    payload = {"role": role_value, "content": content}
    payload.update({k: v for k, v in fields.items() if v is not None})
    return MESSAGE_ADAPTER.validate_python(payload)
