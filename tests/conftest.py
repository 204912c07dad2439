"""Pytest fixtures for Claude Session Index tests."""

import json
from unittest.mock import patch

import numpy as np
import pytest

from claude_session_index.config import EMBEDDING_DIM
from claude_session_index.exceptions import EmbeddingError, EmbeddingServiceUnavailable
from claude_session_index.models import SummaryResult

PROJECT_NAME = "-Users-test-myproject"
PROJECT_PATH = "/Users/test/myproject"


class FakeStore:
    """In-memory stand-in for ChunkStore."""

    def __init__(self, dimensions=EMBEDDING_DIM):
        self.dimensions = dimensions
        self.records = []
        self.schema_calls = 0
        self.rebuild_calls = 0
        self.schema_error = None

    def ensure_schema(self):
        self.schema_calls += 1
        if self.schema_error is not None:
            raise self.schema_error

    def already_indexed_sessions(self):
        return {r.session_id for r in self.records}

    def insert(self, record):
        assert record.embedding.shape == (self.dimensions,)
        self.records.append(record)

    def maybe_rebuild_index(self):
        self.rebuild_calls += 1
        return False

    def query(self, embedding, limit):
        return []


class FakeEmbedder:
    """Embedder returning a constant vector; fails on texts containing fail_marker."""

    base_url = "http://fake-ollama:11434"

    def __init__(self, dimensions=EMBEDDING_DIM, fail_marker=None, available=True):
        self.dimensions = dimensions
        self.fail_marker = fail_marker
        self.available = available
        self.embedded = []

    def health_check(self):
        if not self.available:
            raise EmbeddingServiceUnavailable("Ollama is not reachable at fake")

    def embed(self, text):
        if self.fail_marker is not None and self.fail_marker in text:
            raise EmbeddingError("Ollama error: 500", status_code=500)
        self.embedded.append(text)
        return np.ones(self.dimensions, dtype=np.float32)


class FakeSummarizer:
    """Summarizer that echoes the start of the chunk text."""

    def __init__(self):
        self.calls = []

    def summarize(self, text, fallback=None):
        self.calls.append(text)
        return SummaryResult(text=f"Summary: {text[:100]}")


def user_entry(text, timestamp="2025-01-01T10:00:00Z", content=None):
    """A user event as written to a session log."""
    return {
        "type": "user",
        "timestamp": timestamp,
        "message": {"role": "user", "content": content if content is not None else text},
    }


def assistant_entry(text, timestamp="2025-01-01T10:00:05Z", tools=(), usage=None):
    """An assistant event; tools is a sequence of (tool_use_id, name) pairs."""
    content = [{"type": "text", "text": text}]
    for tool_use_id, name in tools:
        content.append({"type": "tool_use", "id": tool_use_id, "name": name, "input": {}})
    return {
        "type": "assistant",
        "timestamp": timestamp,
        "message": {
            "role": "assistant",
            "model": "claude-sonnet-4-5",
            "content": content,
            "usage": usage or {"input_tokens": 10, "output_tokens": 5},
        },
    }


def tool_result_entry(tool_use_id, result, is_error=False):
    """A user event carrying a tool result."""
    return {
        "type": "user",
        "timestamp": "2025-01-01T10:00:06Z",
        "message": {
            "role": "user",
            "content": [
                {
                    "type": "tool_result",
                    "tool_use_id": tool_use_id,
                    "content": result,
                    "is_error": is_error,
                }
            ],
        },
    }


def to_jsonl(entries):
    return "\n".join(json.dumps(e) for e in entries) + "\n"


@pytest.fixture
def temp_claude_dir(tmp_path):
    """Create a temporary ~/.claude directory structure."""
    claude_dir = tmp_path / ".claude"
    (claude_dir / "projects" / PROJECT_NAME).mkdir(parents=True)
    (claude_dir / "usage-data" / "session-meta").mkdir(parents=True)
    return claude_dir


@pytest.fixture
def mock_claude_dir(temp_claude_dir):
    """Patch the claude directory to use temp directory."""
    with patch("claude_session_index.loader.get_claude_dir", return_value=temp_claude_dir):
        yield temp_claude_dir


@pytest.fixture
def make_session(mock_claude_dir):
    """Factory writing a session's metadata and, optionally, its log."""

    def _make(session_id, entries=None, **meta_overrides):
        meta = {
            "project_path": PROJECT_PATH,
            "start_time": "2025-01-01T10:00:00Z",
            "duration_minutes": 12.5,
            "summary": "",
            "first_prompt": "Help me fix a bug",
            "tool_counts": {"Read": 2, "Edit": 1},
            "input_tokens": 1200,
            "output_tokens": 300,
        }
        meta.update(meta_overrides)
        meta_path = mock_claude_dir / "usage-data" / "session-meta" / f"{session_id}.json"
        meta_path.write_text(json.dumps(meta))
        if entries is not None:
            log_path = mock_claude_dir / "projects" / PROJECT_NAME / f"{session_id}.jsonl"
            log_path.write_text(to_jsonl(entries))
        return session_id

    return _make


@pytest.fixture
def conversation():
    """Factory for a log with n_turns user/assistant exchanges."""

    def _conversation(n_turns, prefix="Question"):
        entries = []
        for i in range(n_turns):
            entries.append(user_entry(f"{prefix} {i}", timestamp=f"2025-01-01T10:{i:02d}:00Z"))
            entries.append(
                assistant_entry(
                    f"Answer {i}",
                    timestamp=f"2025-01-01T10:{i:02d}:30Z",
                    tools=[(f"tool-{i}", "Read")],
                )
            )
        return entries

    return _conversation


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture
def fake_summarizer():
    return FakeSummarizer()
