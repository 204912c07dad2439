"""Group parsed messages into turns and turns into embedding-sized chunks.

A turn starts at each user message; chunks hold ``CHUNK_SIZE`` consecutive
turns. A session with at most ``CHUNK_SIZE`` turns becomes a single chunk.
"""

from .config import CHUNK_SIZE, MAX_CHUNK_TEXT, MESSAGE_PREVIEW_CHARS
from .models import Chunk, ParsedMessage, SessionMeta, Turn


def group_turns(messages: list[ParsedMessage]) -> list[Turn]:
    """Split messages into turns; every user message after the first opens a new one."""
    turns: list[Turn] = []
    current: list[ParsedMessage] = []

    for msg in messages:
        if msg.role == "user" and current:
            turns.append(Turn(messages=current))
            current = []
        current.append(msg)

    if current:
        turns.append(Turn(messages=current))
    return turns


def format_chunk_text(
    messages: list[ParsedMessage], max_chars: int = MAX_CHUNK_TEXT
) -> str:
    """
    Render messages as role-prefixed lines, then cut the whole text to max_chars.

    The cut happens after joining, so trailing messages of a long chunk
    may be dropped entirely.
    """
    lines = []
    for msg in messages:
        prefix = "User:" if msg.role == "user" else "Assistant:"
        tools = f" [Tools: {', '.join(msg.tool_names)}]" if msg.tool_calls else ""
        lines.append(f"{prefix} {msg.content[:MESSAGE_PREVIEW_CHARS]}{tools}")
    return "\n".join(lines)[:max_chars]


def _unique_tools(messages: list[ParsedMessage]) -> list[str]:
    """Tool names in first-seen order, without duplicates."""
    return list(dict.fromkeys(name for msg in messages for name in msg.tool_names))


def _build_chunk(chunk_index: int, turns: list[Turn]) -> Chunk:
    messages = [msg for turn in turns for msg in turn.messages]
    return Chunk(
        chunk_index=chunk_index,
        messages=messages,
        turn_count=len(turns),
        text=format_chunk_text(messages),
        start_time=messages[0].timestamp if messages else None,
        end_time=messages[-1].timestamp if messages else None,
        tools_used=_unique_tools(messages),
    )


def chunk_session(
    messages: list[ParsedMessage], chunk_size: int = CHUNK_SIZE
) -> list[Chunk]:
    """
    Partition a session's messages into chunks of chunk_size turns.

    Args:
        messages: Parsed messages in log order.
        chunk_size: Number of turns per chunk.

    Returns:
        Chunks with contiguous indices starting at 0. Empty if there are
        no messages; exactly one chunk if there are at most chunk_size turns.
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")

    turns = group_turns(messages)
    if not turns:
        return []

    if len(turns) <= chunk_size:
        return [_build_chunk(0, turns)]

    return [
        _build_chunk(chunk_index, turns[start : start + chunk_size])
        for chunk_index, start in enumerate(range(0, len(turns), chunk_size))
    ]


def build_meta_chunk(meta: SessionMeta) -> Chunk:
    """Build a single stand-in chunk from session metadata when no log exists."""
    headline = meta.summary or meta.first_prompt[:200] or "Unknown"
    tools = list(meta.tool_counts)
    text = (
        f"Session: {headline}. Project: {meta.project_path}. "
        f"Duration: {meta.duration_minutes:g}min. Tools: {', '.join(tools)}"
    )
    return Chunk(
        chunk_index=0,
        text=text,
        start_time=meta.start_time,
        tools_used=tools,
    )
