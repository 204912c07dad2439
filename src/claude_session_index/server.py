"""FastMCP server exposing session search to agents."""

import functools

from mcp.server.fastmcp import FastMCP

from .config import DEFAULT_SEARCH_LIMIT
from .embedder import OllamaEmbedder
from .loader import load_session_messages, load_session_meta_by_id
from .query import search_payload, session_detail
from .store import ChunkStore

# Create the MCP server
mcp = FastMCP("claude-session-index")


@functools.lru_cache(maxsize=1)
def get_embedder() -> OllamaEmbedder:
    """Shared embedding client (singleton via lru_cache)."""
    return OllamaEmbedder()


@functools.lru_cache(maxsize=1)
def get_store() -> ChunkStore:
    """Shared chunk store and its connection pool (singleton via lru_cache)."""
    return ChunkStore()


@mcp.tool()
def search_sessions(query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> dict:
    """
    Semantic search across Claude Code sessions.

    Returns matching session chunks (summary, excerpt, tools used, project)
    with similarity scores, best match first.

    Args:
        query: Search query text
        limit: Max results (default: 10)
    """
    return search_payload(query, get_embedder(), get_store(), limit=limit)


@mcp.tool()
def get_session_detail(session_id: str) -> dict:
    """
    Get detailed information about a specific Claude Code session.

    Includes metadata, message counts, tools used, token totals and
    excerpts of the first and last user prompts.

    Args:
        session_id: Session UUID
    """
    return session_detail(
        session_id,
        load_session_meta_by_id(session_id),
        load_session_messages(session_id),
    )


def main():
    """Run the MCP server."""
    mcp.run()


if __name__ == "__main__":
    main()
