# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Session state: the message store and its persistence and recall tiers."""

from context_engine.services.session.archive import ThreadArchive
from context_engine.services.session.lock import SessionLock
from context_engine.services.session.short_term import ShortTermMemory
from context_engine.services.session.store import MessageStore

__all__ = ["MessageStore", "SessionLock", "ShortTermMemory", "ThreadArchive"]
