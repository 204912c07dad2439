"""Batch indexing of Claude Code sessions into the chunk store."""

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from filelock import FileLock, Timeout

from .chunker import build_meta_chunk, chunk_session
from .config import CHUNK_SIZE, LOCK_FILE, SUBAGENT_PREFIX
from .embedder import OllamaEmbedder
from .exceptions import EmbeddingDimensionError, IndexRunLockedError
from .loader import (
    find_session_jsonl,
    list_session_meta_files,
    load_session_meta,
    parse_session_jsonl,
)
from .models import Chunk, ChunkRecord, IndexRunStats, SessionMeta
from .store import ChunkStore
from .summarizer import ChunkSummarizer

logger = logging.getLogger(__name__)

PREFLIGHT_TEXT = "session index preflight"


@contextmanager
def run_lock(lock_path: Path = LOCK_FILE) -> Iterator[None]:
    """
    Hold the host-wide indexing lock for the duration of a run.

    Raises:
        IndexRunLockedError: If another process already holds it.
    """
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    lock = FileLock(lock_path)
    try:
        lock.acquire(timeout=0)
    except Timeout as e:
        raise IndexRunLockedError(str(lock_path)) from e
    try:
        yield
    finally:
        lock.release()


class SessionIndexer:
    """
    Drives one indexing run: schema, preflight, per-session processing, index rebuild.

    Sessions are processed one at a time. A failing session is counted and
    logged; only schema creation, the embedding preflight and the run lock
    can abort a run.
    """

    def __init__(
        self,
        store: ChunkStore,
        embedder: OllamaEmbedder,
        summarizer: ChunkSummarizer,
        *,
        chunk_size: int = CHUNK_SIZE,
        lock_path: Path = LOCK_FILE,
        stop_event: threading.Event | None = None,
    ):
        self.store = store
        self.embedder = embedder
        self.summarizer = summarizer
        self.chunk_size = chunk_size
        self.lock_path = lock_path
        self.stop_event = stop_event or threading.Event()

    def run(self, max_sessions: int | None = None, force: bool = False) -> IndexRunStats:
        """
        Index every eligible session.

        Args:
            max_sessions: Stop after this many sessions were processed (None = no cap).
            force: Re-index sessions that already have records. This adds a
                duplicate set of rows for each of them.

        Returns:
            Tally of processed, skipped and errored sessions.

        Raises:
            IndexRunLockedError: Another run is in progress.
            SchemaError: The chunk table could not be created.
            EmbeddingServiceUnavailable: The embedding service failed its health check.
            EmbeddingError: The embedding service returned an unusable preflight vector.
            EmbeddingDimensionError: Embedding length does not match the store, at
                preflight or for any chunk.
        """
        with run_lock(self.lock_path):
            self.store.ensure_schema()

            self._preflight()

            indexed_ids = set() if force else self.store.already_indexed_sessions()
            logger.info(f"Already indexed: {len(indexed_ids)} sessions")

            stats = self._process_sessions(indexed_ids, max_sessions)
            stats.index_rebuilt = self.store.maybe_rebuild_index()

        logger.info(
            f"Done! Processed: {stats.processed}, Skipped: {stats.skipped}, "
            f"Errors: {stats.errors}"
        )
        return stats

    def _preflight(self) -> None:
        """
        Check the embedding service answers with vectors the store can hold.

        Raises:
            EmbeddingServiceUnavailable: The service is unreachable.
            EmbeddingError: The service answered without a usable vector.
            EmbeddingDimensionError: The vector length differs from the store column.
        """
        self.embedder.health_check()
        vector = self.embedder.embed(PREFLIGHT_TEXT)
        if vector.shape != (self.store.dimensions,):
            raise EmbeddingDimensionError(self.store.dimensions, vector.size)
        logger.info(
            f"Embedding service reachable at {self.embedder.base_url} "
            f"({self.store.dimensions} dimensions)"
        )

    def _process_sessions(
        self, indexed_ids: set[str], max_sessions: int | None
    ) -> IndexRunStats:
        stats = IndexRunStats()
        meta_files = list_session_meta_files()
        logger.info(f"Found {len(meta_files)} session-meta files")

        for meta_file in meta_files:
            if max_sessions is not None and stats.processed >= max_sessions:
                logger.info(f"Reached session limit ({max_sessions})")
                break
            if self.stop_event.is_set():
                stats.interrupted = True
                break

            session_id = meta_file.stem
            if session_id in indexed_ids or session_id.startswith(SUBAGENT_PREFIX):
                stats.skipped += 1
                continue

            try:
                meta = load_session_meta(meta_file)
            except (OSError, ValueError) as e:
                logger.warning(f"Unreadable session meta {meta_file.name}: {e}")
                stats.errors += 1
                continue

            logger.info(f"[{stats.processed + 1}] {session_id} ({meta.project_path})")
            try:
                inserted = self.index_session(meta)
            except EmbeddingDimensionError:
                # Configuration error, fatal to the whole run
                raise
            except Exception as e:
                logger.warning(f"Failed to index {session_id}: {e}")
                stats.errors += 1
                continue

            if inserted is None:
                stats.skipped += 1
                continue
            stats.processed += 1
            stats.chunks_inserted += inserted
            if self.stop_event.is_set():
                stats.interrupted = True
                break

        return stats

    def index_session(self, meta: SessionMeta) -> int | None:
        """
        Chunk, summarize, embed and store one session.

        Sessions without a log are indexed as one chunk built from metadata.

        Returns:
            Number of records inserted, or None if the log has no messages.
        """
        path = find_session_jsonl(meta.session_id)
        if path is None:
            logger.info(f"  No log for {meta.session_id}; indexing metadata only")
            chunk = build_meta_chunk(meta)
            self._store_chunk(meta, chunk, chunk.text)
            return 1

        messages = parse_session_jsonl(path.read_text(encoding="utf-8", errors="replace"))
        logger.info(f"  Messages: {len(messages)}")
        if not messages:
            return None

        chunks = chunk_session(messages, self.chunk_size)
        logger.info(f"  Chunks: {len(chunks)}")

        inserted = 0
        for chunk in chunks:
            summary = self.summarizer.summarize(chunk.text)
            logger.debug(f"  Chunk {chunk.chunk_index}: {summary.text[:80]}...")
            self._store_chunk(meta, chunk, summary.text)
            inserted += 1
            if self.stop_event.is_set():
                logger.warning(f"  Stopping after chunk {chunk.chunk_index} of {meta.session_id}")
                break
        return inserted

    def _store_chunk(self, meta: SessionMeta, chunk: Chunk, summary: str) -> None:
        embedding = self.embedder.embed(summary)
        self.store.insert(
            ChunkRecord(
                session_id=meta.session_id,
                chunk_index=chunk.chunk_index,
                summary=summary,
                raw_excerpt=chunk.text,
                embedding=embedding,
                start_time=chunk.start_time,
                end_time=chunk.end_time,
                tools_used=chunk.tools_used,
                project=meta.project_path,
                token_count=meta.token_count,
            )
        )
