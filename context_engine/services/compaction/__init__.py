# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Context window management.

  tokens     token estimation and truncation
  scoring    per-message retention priority
  trimming   importance-based trimming under a token budget
  repair     tool call / tool result pairing repair
"""

from context_engine.services.compaction.repair import (
    IntegrityViolation,
    RepairReport,
    repair_tool_use_result_pairing,
)
from context_engine.services.compaction.scoring import MAX_IMPORTANCE, score_message
from context_engine.services.compaction.settings import CompactionSettings, ContextBudget
from context_engine.services.compaction.tokens import (
    HeuristicTokenEstimator,
    TiktokenEstimator,
    TokenEstimator,
    estimate_messages_tokens,
    estimate_tokens,
    get_estimator,
)
from context_engine.services.compaction.trimming import TrimReport, trim_messages

__all__ = [
    "CompactionSettings",
    "ContextBudget",
    "HeuristicTokenEstimator",
    "IntegrityViolation",
    "MAX_IMPORTANCE",
    "RepairReport",
    "TiktokenEstimator",
    "TokenEstimator",
    "TrimReport",
    "estimate_messages_tokens",
    "estimate_tokens",
    "get_estimator",
    "repair_tool_use_result_pairing",
    "score_message",
    "trim_messages",
]
