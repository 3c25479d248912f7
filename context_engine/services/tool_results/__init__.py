# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Externalization of oversized tool results."""

from context_engine.services.tool_results.store import (
    ExternalizedResult,
    RetrievalResult,
    ToolResultStore,
)

__all__ = ["ExternalizedResult", "RetrievalResult", "ToolResultStore"]
