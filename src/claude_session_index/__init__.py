"""Claude Session Index - chunk, summarize and embed Claude Code sessions for semantic search."""

from .chunker import chunk_session, group_turns
from .embedder import OllamaEmbedder
from .indexer import SessionIndexer
from .loader import parse_session_jsonl
from .models import (
    Chunk,
    ChunkRecord,
    IndexRunStats,
    ParsedMessage,
    SearchMatch,
    SearchResponse,
    SessionMeta,
    ToolInvocation,
    Turn,
)
from .query import search_sessions
from .store import ChunkStore
from .summarizer import ChunkSummarizer

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "parse_session_jsonl",
    "group_turns",
    "chunk_session",
    "ChunkSummarizer",
    "OllamaEmbedder",
    "ChunkStore",
    "SessionIndexer",
    "search_sessions",
    "ToolInvocation",
    "ParsedMessage",
    "Turn",
    "Chunk",
    "SessionMeta",
    "ChunkRecord",
    "SearchMatch",
    "SearchResponse",
    "IndexRunStats",
]
