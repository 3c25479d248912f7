# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Engine configuration using pydantic-settings.
"""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings.

    Context thresholds are ratios of the model's context window so they scale
    with whatever model is selected.

    Attributes:
        APP_NAME (str): Display name used in notices.
        DEBUG (bool): Whether to enable debug behaviour.
        SESSIONS_DIR (str): Root directory for session snapshots, lock files
            and persisted tool results.
        CONTEXT_WINDOW_TOKENS (int): Context window of the selected model.
        MAX_RESPONSE_TOKENS (int): Tokens reserved for the model's reply.
        RESERVED_TOOL_SCHEMA_TOKENS (int): Tokens reserved for tool schemas.
        TRIM_THRESHOLD_RATIO (float): Share of the context window at which
            the conversation is trimmed.
        TRIM_KEEP_RECENT (int): Number of recent messages always kept.
        TRIM_MIDDLE_RETENTION (float): Share of middle messages kept by
            importance.
        TRIM_MIN_MESSAGES (int): Conversations at or below this length are
            never trimmed.
        TRIM_MIN_RECENT (int): Floor for the recent window when enforcing the
            budget.
        TOKEN_ESTIMATOR (str): ``"heuristic"`` or ``"tiktoken"``.
        CHARS_PER_TOKEN (float): Characters per token for the heuristic.
        TIKTOKEN_ENCODING (str): Encoding name for the tiktoken estimator.
        TOOL_RESULT_INLINE_MAX (int): Largest tool result sent inline.
        TOOL_RESULT_PREVIEW_SIZE (int): Preview size for persisted results.
        TOOL_RESULT_DEFAULT_CHUNK (int): Default chunk length for retrieval.
        TOOL_RESULT_MAX_CHUNK (int): Hard cap on a retrieval chunk.
        TOOL_RESULT_WRAP_WIDTH (int): Lines longer than this are wrapped
            before persisting.
        TOOL_RESULT_FUZZY_MAX_DISTANCE (int): Largest edit distance at which
            a misremembered tool call id is auto-corrected.
        TOOL_RESULT_RETENTION_SECONDS (int): Age after which persisted tool
            results are purged by cleanup.
        SHORT_TERM_MAX_SIZE (int): Capacity of the short-term recall buffer.
        SESSION_LOCK_STALE_SECONDS (int): Age after which a lock is stale.
        SESSION_LOCK_POLL_INTERVAL (float): Seconds between lock attempts.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    APP_NAME: str = "Context Engine"
    DEBUG: bool = False

    # Storage
    SESSIONS_DIR: str = ".context_engine/sessions"

    # Model budget
    CONTEXT_WINDOW_TOKENS: int = 128_000
    MAX_RESPONSE_TOKENS: int = 16_000
    RESERVED_TOOL_SCHEMA_TOKENS: int = 0

    # Trimming
    TRIM_THRESHOLD_RATIO: float = 0.58
    TRIM_KEEP_RECENT: int = 10
    TRIM_MIDDLE_RETENTION: float = 0.3
    TRIM_MIN_MESSAGES: int = 15
    TRIM_MIN_RECENT: int = 2

    # Token estimation
    TOKEN_ESTIMATOR: Literal["heuristic", "tiktoken"] = "heuristic"
    CHARS_PER_TOKEN: float = 4.0
    TIKTOKEN_ENCODING: str = "o200k_base"

    # Tool result externalization
    TOOL_RESULT_INLINE_MAX: int = 8192
    TOOL_RESULT_PREVIEW_SIZE: int = 8192
    TOOL_RESULT_DEFAULT_CHUNK: int = 8192
    TOOL_RESULT_MAX_CHUNK: int = 32_768
    TOOL_RESULT_WRAP_WIDTH: int = 1000
    TOOL_RESULT_FUZZY_MAX_DISTANCE: int = 2
    TOOL_RESULT_RETENTION_SECONDS: int = 7 * 24 * 3600

    # Recall
    SHORT_TERM_MAX_SIZE: int = 20

    # Session lock
    SESSION_LOCK_STALE_SECONDS: int = 24 * 3600
    SESSION_LOCK_POLL_INTERVAL: float = 0.1


settings = Settings()
