"""Centralized configuration constants for Claude Session Index."""

from pathlib import Path

# Claude Code data locations
CLAUDE_DIR = Path.home() / ".claude"

# Run lock
CACHE_DIR = Path.home() / ".cache" / "claude-session-index"
LOCK_FILE = CACHE_DIR / "index-run.lock"

# Embedding service
OLLAMA_URL_ENV = "SESSION_INDEX_OLLAMA_URL"
DEFAULT_OLLAMA_URL = "http://localhost:11434"
EMBED_MODEL_ENV = "SESSION_INDEX_EMBED_MODEL"
DEFAULT_EMBED_MODEL = "embeddinggemma"
EMBEDDING_DIM = 768
EMBED_TIMEOUT_SECONDS = 60
HEALTH_CHECK_TIMEOUT_SECONDS = 5

# Summarization service
SUMMARY_MODEL_ENV = "SESSION_INDEX_SUMMARY_MODEL"
DEFAULT_SUMMARY_MODEL = "claude-haiku-4-5-20251001"
ANTHROPIC_API_KEY_ENV = "ANTHROPIC_API_KEY"
SUMMARY_MAX_TOKENS = 300
SUMMARY_FALLBACK_CHARS = 200

# Vector store
DATABASE_URL_ENV = "SESSION_INDEX_DATABASE_URL"
DEFAULT_DATABASE_URL = "postgresql://localhost:5432/sessions"
TABLE_NAME = "session_chunks"
INDEX_NAME = "session_chunks_embedding_idx"
MIN_ROWS_FOR_INDEX = 100
RAW_EXCERPT_CHARS = 2000

# Chunking
CHUNK_SIZE = 5  # turns per chunk
MAX_CHUNK_TEXT = 3000
MESSAGE_PREVIEW_CHARS = 600
TOOL_RESULT_CHARS = 500

# Orchestrator
SUBAGENT_PREFIX = "agent-"

# Query defaults
DEFAULT_SEARCH_LIMIT = 10
EXCERPT_CHARS = 300
