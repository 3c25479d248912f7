# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Notice and marker text injected into the conversation.

Everything the model or the user reads that is produced by the engine itself
lives here, so wording changes never touch the algorithms.

Guidelines followed by these texts:
  1. Tell the model what happened and give it the exact call to recover.
  2. Keep machine-readable fields in ``key=value`` form on one line.
  3. Never surface raw internal diagnostics to the user.
"""

NO_OUTPUT = "(no output)"

REPAIR_NOTIFICATION = "Session restored. Ready to continue."

TRIM_NOTICE_TEMPLATE = (
    "[CONTEXT TRIM: {archived} messages archived]\n"
    "Token limit approached. Older messages moved to the session archive.\n"
    "Recent {keep_recent} messages preserved. To recover archived context:\n"
    "  memory_operations(operation: 'recall_sessions', query: '...')\n"
    "All work preserved in session history file."
)

TOOL_RESULT_PREVIEW_HEADER = "[TOOL_RESULT_PREVIEW: First {preview_size} bytes shown]"

TOOL_RESULT_STORED_LINE = (
    "[TOOL_RESULT_STORED: toolCallId={tool_call_id}, totalLength={total_length}, "
    "storedLength={stored_length}, remaining={remaining} bytes]"
)

TOOL_RESULT_READ_INSTRUCTION = (
    "To read the full result, use:\n"
    'read_tool_result(toolCallId: "{tool_call_id}", offset: {offset}, length: {length})'
)

TOOL_RESULT_WRAPPED_NOTE = (
    "[NOTE: Lines longer than {width} characters were wrapped before storage; "
    "stored length is {stored_length}.]"
)

BINARY_CONTENT_WARNING = (
    "[WARNING: Content contains control characters and may be binary data. "
    "Treat the preview with care.]"
)

FEW_LINE_BREAKS_WARNING = (
    "[WARNING: Content has very few line breaks (may be minified or binary). "
    "Long lines were wrapped at {width} characters.]"
)

PERSISTENCE_FAILED_HEADER = (
    "[WARNING: Tool result too large ({total_length} bytes) and persistence failed]"
)

PERSISTENCE_FAILED_FOOTER = "[TRUNCATED: Remaining {remaining} bytes not shown]"

TOOL_RESULT_NOT_FOUND = (
    "Tool result not found: {tool_call_id}\n\n"
    "This result may have been:\n"
    "- Already deleted\n"
    "- Never persisted (small enough to send inline)\n"
    "- From a different session (cross-session access denied)\n\n"
    "Check that the toolCallId is correct and the result was actually persisted."
)

TOOL_RESULT_SUGGESTIONS = "Closest stored ids:\n{suggestions}"

TOOL_RESULT_INVALID_OFFSET = (
    "Invalid offset {offset}\n\n"
    "The tool result has {total_length} characters total.\n"
    "Valid offset range: 0 to {last_offset}\n\n"
    "Start reading from offset 0:\n"
    'read_tool_result(toolCallId: "{tool_call_id}", offset: 0, length: {length})'
)

TOOL_RESULT_CORRECTED_NOTE = (
    '[NOTE: No result for "{requested_id}"; using closest match "{tool_call_id}".]'
)
