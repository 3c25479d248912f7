# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Schemas for message roles and persisted session snapshots."""
