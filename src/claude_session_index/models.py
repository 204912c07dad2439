"""Pydantic data models for Claude Session Index."""

from datetime import datetime
from typing import Any, Literal

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, model_validator


class ToolInvocation(BaseModel):
    """A tool call made by the assistant, resolved once its result arrives."""

    tool_use_id: str = ""
    name: str
    input: dict[str, Any] = Field(default_factory=dict)
    result: str = ""
    is_error: bool = False
    resolved: bool = False


class ParsedMessage(BaseModel):
    """A user or assistant message extracted from a session log."""

    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime | None = None
    tool_calls: list[ToolInvocation] = Field(default_factory=list)
    usage: dict[str, int] = Field(default_factory=dict)
    model: str = ""

    @property
    def tool_names(self) -> list[str]:
        return [tc.name for tc in self.tool_calls]


class Turn(BaseModel):
    """A user message and everything that follows it until the next user message."""

    messages: list[ParsedMessage]


class Chunk(BaseModel):
    """A group of turns prepared for summarization and embedding."""

    chunk_index: int
    messages: list[ParsedMessage] = Field(default_factory=list)
    turn_count: int = 0
    text: str
    start_time: datetime | None = None
    end_time: datetime | None = None
    tools_used: list[str] = Field(default_factory=list)


class SessionMeta(BaseModel):
    """Per-session metadata written by Claude Code's usage tracker."""

    session_id: str
    project_path: str = ""
    start_time: datetime | None = None
    duration_minutes: float = 0
    summary: str = ""
    first_prompt: str = ""
    tool_counts: dict[str, int] = Field(default_factory=dict)
    languages: dict[str, int] = Field(default_factory=dict)
    user_message_count: int = 0
    assistant_message_count: int = 0
    input_tokens: int = 0
    output_tokens: int = 0

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        # Usage tracker writes null for fields it could not compute
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data

    @property
    def token_count(self) -> int:
        return self.input_tokens + self.output_tokens


class ChunkRecord(BaseModel):
    """A chunk row as persisted in the vector store."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    session_id: str
    chunk_index: int
    summary: str
    raw_excerpt: str
    embedding: np.ndarray
    start_time: datetime | None = None
    end_time: datetime | None = None
    tools_used: list[str] = Field(default_factory=list)
    project: str = ""
    classification: str | None = None
    token_count: int = 0


class SummaryResult(BaseModel):
    """Outcome of a summarization call: a real digest or a degraded fallback."""

    text: str
    degraded: bool = False
    error: str | None = None


class SearchMatch(BaseModel):
    """A chunk returned by similarity search."""

    session_id: str
    chunk_index: int
    summary: str | None = None
    excerpt: str | None = None
    tools_used: list[str] = Field(default_factory=list)
    project: str | None = None
    classification: str | None = None
    similarity: str  # formatted to three decimal places


class SearchResponse(BaseModel):
    """Response from the search_sessions tool."""

    results: list[SearchMatch]
    count: int


class IndexRunStats(BaseModel):
    """Tally reported at the end of an indexing run."""

    processed: int = 0
    skipped: int = 0
    errors: int = 0
    chunks_inserted: int = 0
    index_rebuilt: bool = False
    interrupted: bool = False
