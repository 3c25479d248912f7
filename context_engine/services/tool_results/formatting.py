# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Text shaping for externalized tool results.

Long lines are wrapped before a payload is stored so that a single
minified or binary line cannot dominate a preview or a chunk. Wrapping
replaces the last space before the width limit with a newline, which keeps
the length unchanged; a line without spaces is hard-broken, which adds one
newline per break.
"""

from __future__ import annotations

import re
from typing import List, Optional

from context_engine.services.prompts.base import (
    BINARY_CONTENT_WARNING,
    FEW_LINE_BREAKS_WARNING,
    PERSISTENCE_FAILED_FOOTER,
    PERSISTENCE_FAILED_HEADER,
    TOOL_RESULT_CORRECTED_NOTE,
    TOOL_RESULT_PREVIEW_HEADER,
    TOOL_RESULT_READ_INSTRUCTION,
    TOOL_RESULT_STORED_LINE,
    TOOL_RESULT_WRAPPED_NOTE,
)

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def _wrap_line(line: str, width: int) -> List[str]:
    pieces: List[str] = []
    while len(line) > width:
        cut = line.rfind(" ", 0, width + 1)
        if cut > 0:
            pieces.append(line[:cut])
            line = line[cut + 1 :]
        else:
            pieces.append(line[:width])
            line = line[width:]
    pieces.append(line)
    return pieces


def wrap_long_lines(text: str, width: int) -> str:
    """Wrap every line longer than ``width`` characters.

    Args:
        text (str): Text to wrap.
        width (int): Maximum line length.

    Returns:
        str: Text in which no line is longer than ``width``.
    """
    if width <= 0:
        return text
    lines = text.split("\n")
    if all(len(line) <= width for line in lines):
        return text
    wrapped: List[str] = []
    for line in lines:
        wrapped.extend(_wrap_line(line, width))
    return "\n".join(wrapped)


def content_quality_warning(text: str, width: int) -> Optional[str]:
    """Warn when ``text`` looks binary or has almost no line breaks.

    Args:
        text (str): Original tool output.
        width (int): Wrap width used for storage.

    Returns:
        Optional[str]: A warning line, or ``None`` for ordinary text.
    """
    if _CONTROL_CHARS.search(text):
        return BINARY_CONTENT_WARNING
    if len(text) > width and text.count("\n") < len(text) // width:
        return FEW_LINE_BREAKS_WARNING.format(width=width)
    return None


def build_marker(
    tool_call_id: str,
    preview: str,
    total_length: int,
    stored_length: int,
    chunk_length: int,
    width: int,
    warning: Optional[str] = None,
) -> str:
    """Render the in-log replacement for an externalized result.

    Args:
        tool_call_id (str): Id the result is stored under.
        preview (str): Leading part of the stored payload.
        total_length (int): Length of the original output.
        stored_length (int): Length of the stored (wrapped) payload.
        chunk_length (int): Chunk length suggested in the read instruction.
        width (int): Wrap width, mentioned when wrapping changed the length.
        warning (Optional[str]): Content-quality warning.

    Returns:
        str: Preview with header, storage line and read instruction.
    """
    parts = [TOOL_RESULT_PREVIEW_HEADER.format(preview_size=len(preview)), preview]
    if warning:
        parts.append(warning)
    if stored_length != total_length:
        parts.append(TOOL_RESULT_WRAPPED_NOTE.format(width=width, stored_length=stored_length))
    parts.append(
        TOOL_RESULT_STORED_LINE.format(
            tool_call_id=tool_call_id,
            total_length=total_length,
            stored_length=stored_length,
            remaining=max(0, total_length - len(preview)),
        )
    )
    parts.append(
        TOOL_RESULT_READ_INSTRUCTION.format(
            tool_call_id=tool_call_id,
            offset=len(preview),
            length=chunk_length,
        )
    )
    return "\n\n".join(parts)


def build_fallback(content: str, inline_max: int) -> str:
    """Truncated inline content used when persisting failed."""
    return "\n\n".join(
        [
            PERSISTENCE_FAILED_HEADER.format(total_length=len(content)),
            content[:inline_max],
            PERSISTENCE_FAILED_FOOTER.format(remaining=max(0, len(content) - inline_max)),
        ]
    )


def render_chunk(
    tool_call_id: str,
    content: str,
    offset: int,
    total_length: int,
    has_more: bool,
    next_offset: Optional[int],
    length: int,
    requested_id: Optional[str] = None,
) -> str:
    """Render a retrieved chunk for the model.

    Args:
        tool_call_id (str): Resolved id of the stored result.
        content (str): Chunk text.
        offset (int): Offset of the chunk.
        total_length (int): Length of the stored payload.
        has_more (bool): Whether content remains after the chunk.
        next_offset (Optional[int]): Offset of the next chunk.
        length (int): Chunk length to suggest for the next read.
        requested_id (Optional[str]): Id the caller asked for, when it was
            corrected to ``tool_call_id``.

    Returns:
        str: The chunk with header and continuation hint.
    """
    lines: List[str] = []
    if requested_id and requested_id != tool_call_id:
        lines.append(TOOL_RESULT_CORRECTED_NOTE.format(requested_id=requested_id, tool_call_id=tool_call_id))
    lines += [
        "[TOOL_RESULT_CHUNK]",
        f"Tool Call ID: {tool_call_id}",
        f"Offset: {offset}",
        f"Length: {len(content)}",
        f"Total Length: {total_length}",
        f"Has More: {'true' if has_more else 'false'}",
    ]
    if has_more and next_offset is not None:
        lines.append(f"Next Offset: {next_offset}")
    lines += ["", "--- Content ---", content, "--- End Content ---", ""]
    if has_more and next_offset is not None:
        lines.append("To read next chunk:")
        lines.append(f'read_tool_result(toolCallId: "{tool_call_id}", offset: {next_offset}, length: {length})')
    else:
        lines.append("SUCCESS: All content retrieved (no more chunks)")
    return "\n".join(lines)
