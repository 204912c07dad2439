"""Load and parse Claude Code session logs and metadata from ~/.claude."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .config import CLAUDE_DIR, TOOL_RESULT_CHARS
from .models import ParsedMessage, SessionMeta, ToolInvocation

logger = logging.getLogger(__name__)


def get_claude_dir() -> Path:
    """Get the Claude configuration directory."""
    return CLAUDE_DIR


def get_projects_dir() -> Path:
    """Get the projects directory containing conversation logs."""
    return get_claude_dir() / "projects"


def get_session_meta_dir() -> Path:
    """Get the directory holding per-session metadata files."""
    return get_claude_dir() / "usage-data" / "session-meta"


def _parse_timestamp(ts: str | int | None) -> datetime | None:
    """Parse a timestamp from various formats."""
    if ts is None:
        return None
    if isinstance(ts, int):
        # Unix timestamp in milliseconds
        return datetime.fromtimestamp(ts / 1000, tz=timezone.utc)
    if isinstance(ts, str):
        try:
            return datetime.fromisoformat(ts.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


def _extract_text(content: Any) -> str:
    """Join the text items of a content array, or stringify scalar content."""
    if isinstance(content, list):
        return " ".join(
            str(item.get("text") or "")
            for item in content
            if isinstance(item, dict) and item.get("type") == "text"
        )
    if content is None:
        return ""
    return str(content)


def _tool_result_text(content: Any) -> str:
    """Flatten a tool_result payload into text."""
    if isinstance(content, list):
        return _extract_text(content)
    return str(content or "")


def parse_session_jsonl(content: str) -> list[ParsedMessage]:
    """
    Parse the raw text of a session log into ordered messages.

    Malformed lines, non-message events and events without a role are
    skipped. Tool results are matched to the assistant tool call that
    shares their id; each id resolves at most once.

    Args:
        content: Full text of a session's JSONL log.

    Returns:
        Messages in log order.
    """
    messages: list[ParsedMessage] = []
    pending: dict[str, ToolInvocation] = {}

    for line_no, line in enumerate(content.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            logger.debug(f"Skipping malformed line {line_no}")
            continue
        if not isinstance(entry, dict):
            continue

        if entry.get("type") not in ("user", "assistant"):
            continue

        msg_data = entry.get("message") or {}
        if not isinstance(msg_data, dict):
            continue
        role = msg_data.get("role")
        if role not in ("user", "assistant"):
            continue

        timestamp = _parse_timestamp(entry.get("timestamp"))
        items = msg_data.get("content")

        if role == "user":
            if isinstance(items, list):
                for item in items:
                    if not isinstance(item, dict) or item.get("type") != "tool_result":
                        continue
                    invocation = pending.pop(str(item.get("tool_use_id") or ""), None)
                    if invocation is None:
                        continue
                    invocation.result = _tool_result_text(item.get("content"))[:TOOL_RESULT_CHARS]
                    invocation.is_error = bool(item.get("is_error", False))
                    invocation.resolved = True

            messages.append(
                ParsedMessage(
                    role="user", content=_extract_text(items).strip(), timestamp=timestamp
                )
            )
            continue

        tool_calls: list[ToolInvocation] = []
        if isinstance(items, list):
            for item in items:
                if isinstance(item, dict) and item.get("type") == "tool_use":
                    tool_input = item.get("input")
                    invocation = ToolInvocation(
                        tool_use_id=str(item.get("id") or ""),
                        name=str(item.get("name") or ""),
                        input=tool_input if isinstance(tool_input, dict) else {},
                    )
                    tool_calls.append(invocation)
                    pending[invocation.tool_use_id] = invocation

        usage = msg_data.get("usage")
        if not isinstance(usage, dict):
            usage = {}
        messages.append(
            ParsedMessage(
                role="assistant",
                content=_extract_text(items).strip(),
                timestamp=timestamp,
                tool_calls=tool_calls,
                usage={k: v for k, v in usage.items() if isinstance(v, int)},
                model=str(msg_data.get("model") or ""),
            )
        )

    if pending:
        logger.debug(f"{len(pending)} tool calls left without a result")

    return messages


def find_session_jsonl(session_id: str) -> Path | None:
    """Find a session's log file in any project directory."""
    projects_dir = get_projects_dir()
    if not projects_dir.exists():
        return None

    for project_dir in sorted(projects_dir.iterdir()):
        candidate = project_dir / f"{session_id}.jsonl"
        if candidate.is_file():
            return candidate
    return None


def list_session_meta_files() -> list[Path]:
    """List all session metadata files, sorted by name."""
    meta_dir = get_session_meta_dir()
    if not meta_dir.exists():
        return []
    return sorted(meta_dir.glob("*.json"))


def load_session_meta(path: Path) -> SessionMeta:
    """
    Load one session metadata file.

    Raises:
        OSError: If the file cannot be read.
        ValueError: If the file is not valid JSON or fails validation.
    """
    with open(path) as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object in {path}")
    data.setdefault("session_id", path.stem)
    return SessionMeta.model_validate(data)


def load_session_meta_by_id(session_id: str) -> SessionMeta | None:
    """Load metadata for a session id, or None if missing or unreadable."""
    path = get_session_meta_dir() / f"{session_id}.json"
    try:
        return load_session_meta(path)
    except (OSError, ValueError):
        return None


def load_session_messages(session_id: str) -> list[ParsedMessage]:
    """Find and parse a session's log; empty if no log exists."""
    path = find_session_jsonl(session_id)
    if path is None:
        return []
    return parse_session_jsonl(path.read_text(encoding="utf-8", errors="replace"))
