"""Similarity search and session detail lookups over indexed sessions."""

import logging
from collections import Counter

import psycopg

from .config import DEFAULT_SEARCH_LIMIT, EXCERPT_CHARS
from .embedder import OllamaEmbedder
from .exceptions import EmbeddingError, EmbeddingServiceUnavailable
from .models import ParsedMessage, SearchMatch, SearchResponse, SessionMeta
from .store import ChunkStore

logger = logging.getLogger(__name__)


def _truncate_excerpt(excerpt: str | None, max_length: int = EXCERPT_CHARS) -> str | None:
    """Cut a stored excerpt down for display."""
    if excerpt is None:
        return None
    return excerpt[:max_length]


def _format_similarity(value: float) -> str:
    return f"{float(value):.3f}"


def search_sessions(
    query: str,
    embedder: OllamaEmbedder,
    store: ChunkStore,
    limit: int | None = None,
) -> SearchResponse:
    """
    Embed a free-text query and return the closest session chunks.

    Args:
        query: Search text.
        embedder: Embedding client used for the query vector.
        store: Chunk store to search.
        limit: Maximum results (default DEFAULT_SEARCH_LIMIT).

    Returns:
        SearchResponse ranked by similarity, highest first.

    Raises:
        EmbeddingServiceUnavailable: If the query cannot be embedded.
        EmbeddingError: If the embedding service returns an unusable response.
    """
    max_results = limit or DEFAULT_SEARCH_LIMIT

    embedding = embedder.embed(query)
    rows = store.query(embedding, max_results)
    matches = [
        SearchMatch(
            session_id=row["session_id"],
            chunk_index=row["chunk_index"],
            summary=row["summary"],
            excerpt=_truncate_excerpt(row["raw_excerpt"]),
            tools_used=row["tools_used"] or [],
            project=row["project"],
            classification=row["classification"],
            similarity=_format_similarity(row["similarity"]),
        )
        for row in rows
    ]
    return SearchResponse(results=matches, count=len(matches))


def search_payload(
    query: str,
    embedder: OllamaEmbedder,
    store: ChunkStore,
    limit: int | None = None,
) -> dict:
    """Run a search and turn every failure into a single error payload."""
    try:
        response = search_sessions(query, embedder, store, limit=limit)
    except EmbeddingServiceUnavailable as e:
        return {"error": "Ollama not available for embedding. Is it running?", "detail": str(e)}
    except EmbeddingError as e:
        return {"error": "Embedding failed", "detail": str(e)}
    except psycopg.Error as e:
        logger.warning(f"pgvector query failed: {e}")
        return {"error": "pgvector query failed", "detail": str(e)}
    return response.model_dump(mode="json")


def session_detail(
    session_id: str, meta: SessionMeta | None, messages: list[ParsedMessage]
) -> dict:
    """
    Describe one session from its metadata and parsed log.

    Either source may be missing; the corresponding section is then
    null (metadata) or zeroed (parsed log).
    """
    tool_counts: Counter[str] = Counter()
    tokens = {"input": 0, "output": 0}
    for msg in messages:
        tool_counts.update(msg.tool_names)
        tokens["input"] += msg.usage.get("input_tokens", 0)
        tokens["output"] += msg.usage.get("output_tokens", 0)

    user_messages = [m for m in messages if m.role == "user"]
    excerpts = []
    if user_messages:
        first = user_messages[0]
        excerpts.append(_excerpt(first, 500))
    excerpts.extend(_excerpt(m, 300) for m in user_messages[-3:])

    return {
        "session_id": session_id,
        "meta": (
            {
                "project": meta.project_path,
                "start_time": meta.start_time.isoformat() if meta.start_time else None,
                "duration_minutes": meta.duration_minutes,
                "summary": meta.summary,
                "first_prompt": meta.first_prompt[:500],
                "user_messages": meta.user_message_count,
                "assistant_messages": meta.assistant_message_count,
                "tool_counts": meta.tool_counts,
                "languages": meta.languages,
                "input_tokens": meta.input_tokens,
                "output_tokens": meta.output_tokens,
            }
            if meta
            else None
        ),
        "parsed": {
            "message_count": len(messages),
            "tool_counts": dict(tool_counts),
            "tokens": tokens,
            "excerpts": excerpts,
        },
    }


def _excerpt(msg: ParsedMessage, max_length: int) -> dict:
    return {
        "role": msg.role,
        "content": msg.content[:max_length],
        "timestamp": msg.timestamp.isoformat() if msg.timestamp else None,
    }
