# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Persisted session snapshot schema.

The snapshot is the full conversation log plus session metadata. Older
snapshots are migrated on read:

  * a flat ``ltm`` mapping ``{key: value}`` becomes ``discoveries`` records;
  * short-term entries whose ``role`` is itself a mapping are unwrapped, and
    entries without a usable role are dropped.
"""

import time
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from context_engine.models import Message

LEGACY_DISCOVERY_CONFIDENCE = 0.5


class BillingRequest(BaseModel):
    """Usage recorded for a single provider request.

    Attributes:
        timestamp (float): Unix time of the request.
        model (str): Model that served the request.
        provider (Optional[str]): Provider name, when known.
        multiplier (float): Premium-request multiplier charged.
        prompt_tokens (int): Prompt tokens reported by the provider.
        completion_tokens (int): Completion tokens reported by the provider.
        total_tokens (int): Total tokens reported or derived.
    """

    timestamp: float
    model: str = "unknown"
    provider: Optional[str] = None
    multiplier: float = 0.0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class BillingState(BaseModel):
    """Cumulative usage counters for a session."""

    total_prompt_tokens: int = 0
    total_completion_tokens: int = 0
    total_tokens: int = 0
    total_requests: int = 0
    total_premium_requests: float = 0.0
    model: Optional[str] = None
    multiplier: float = 0.0
    requests: List[BillingRequest] = Field(default_factory=list)


class Discovery(BaseModel):
    """Long-term fact record (shape produced by legacy migration)."""

    fact: str
    confidence: float = 0.8
    verified: bool = False
    timestamp: float = Field(default_factory=time.time)


class ShortTermEntry(BaseModel):
    """Entry in the short-term recall buffer."""

    role: str
    content: str = ""


class SessionSnapshot(BaseModel):
    """Everything written to ``<sessions_dir>/<session_id>.json``.

    Attributes:
        history (List[Message]): Active conversation log.
        working_directory (Optional[str]): Directory the session was run in.
        created_at (float): Session creation time (unix seconds).
        selected_model (Optional[str]): Model selected for the session.
        billing (BillingState): Usage counters.
        context_files (List[str]): Files pinned into the context.
        stateful_markers (List[Any]): Provider continuation markers,
            stored under ``_stateful_markers``.
        last_provider_response_id (Optional[str]): Most recent provider
            response id.
        api_config (Dict[str, Any]): Session-scoped API overrides.
        stm (List[ShortTermEntry]): Short-term recall buffer.
        archive (Dict[str, List[Dict[str, Any]]]): Archive threads keyed by
            thread id.
        discoveries (List[Discovery]): Long-term fact records.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    history: List[Message] = Field(default_factory=list)
    working_directory: Optional[str] = None
    created_at: float = Field(default_factory=time.time)
    selected_model: Optional[str] = None
    billing: BillingState = Field(default_factory=BillingState)
    context_files: List[str] = Field(default_factory=list)
    stateful_markers: List[Any] = Field(default_factory=list, alias="_stateful_markers")
    last_provider_response_id: Optional[str] = None
    api_config: Dict[str, Any] = Field(default_factory=dict)
    stm: List[ShortTermEntry] = Field(default_factory=list)
    archive: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)
    discoveries: List[Discovery] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _migrate_legacy(cls, data: Any) -> Any:
        """Upgrade older snapshot layouts before validation."""
        if not isinstance(data, dict):
            return data
        data = dict(data)

        legacy_ltm = data.pop("ltm", None)
        if isinstance(legacy_ltm, dict) and legacy_ltm and not data.get("discoveries"):
            data["discoveries"] = [
                {
                    "fact": f"{key}: {value}",
                    "confidence": LEGACY_DISCOVERY_CONFIDENCE,
                    "verified": False,
                }
                for key, value in legacy_ltm.items()
            ]

        if isinstance(data.get("stm"), list):
            data["stm"] = _clean_short_term(data["stm"])

        # Older snapshots kept the archive under its original key
        if "archive" not in data and isinstance(data.get("yarn"), dict):
            data["archive"] = data.pop("yarn")

        if data.get("billing") is None:
            data.pop("billing", None)
        return data

    def to_json(self) -> str:
        """Serialize with the on-disk field names."""
        return self.model_dump_json(by_alias=True)


def _clean_short_term(entries: List[Any]) -> List[Dict[str, str]]:
    """Repair short-term entries written with a nested role mapping.

    Args:
        entries (List[Any]): Raw entries from the snapshot.

    Returns:
        List[Dict[str, str]]: Entries with a string role and string content.
    """
    cleaned: List[Dict[str, str]] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        role = entry.get("role")
        content = entry.get("content")
        if isinstance(role, dict):
            if role.get("content") is not None:
                content = role["content"]
            role = role.get("role")
        if isinstance(role, str) and role:
            cleaned.append({"role": role, "content": content if isinstance(content, str) else ""})
    return cleaned
