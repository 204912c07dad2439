"""PostgreSQL + pgvector storage for session chunk records."""

import logging
import os
from contextlib import contextmanager
from typing import Any, Iterator

import numpy as np
import psycopg
from pgvector.psycopg import register_vector
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from .config import (
    DATABASE_URL_ENV,
    DEFAULT_DATABASE_URL,
    EMBEDDING_DIM,
    INDEX_NAME,
    MIN_ROWS_FOR_INDEX,
    RAW_EXCERPT_CHARS,
    TABLE_NAME,
)
from .exceptions import EmbeddingDimensionError, SchemaError
from .models import ChunkRecord

logger = logging.getLogger(__name__)


def get_database_url() -> str:
    """Database URL from the environment, falling back to the local default."""
    return os.environ.get(DATABASE_URL_ENV) or DEFAULT_DATABASE_URL


class ChunkStore:
    """
    Append-only table of chunk records with an IVFFlat cosine index.

    There is no uniqueness constraint on (session_id, chunk_index): callers
    check already_indexed_sessions() before inserting. The similarity index
    is a derived artifact rebuilt by maybe_rebuild_index(); searches fall
    back to an exact scan while it is missing.
    """

    def __init__(
        self,
        database_url: str | None = None,
        *,
        dimensions: int = EMBEDDING_DIM,
        pool: ConnectionPool | None = None,
        table: str = TABLE_NAME,
        index_name: str = INDEX_NAME,
        min_rows_for_index: int = MIN_ROWS_FOR_INDEX,
    ):
        self.dimensions = dimensions
        self.table = table
        self.index_name = index_name
        self.min_rows_for_index = min_rows_for_index
        self._pool = pool or ConnectionPool(
            database_url or get_database_url(),
            open=True,
            kwargs={"row_factory": dict_row},
        )

    def __enter__(self) -> "ChunkStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._pool.close()

    @contextmanager
    def _connection(self) -> Iterator[psycopg.Connection]:
        with self._pool.connection() as conn:
            register_vector(conn)
            yield conn

    def _create_index_sql(self) -> str:
        return (
            f"CREATE INDEX IF NOT EXISTS {self.index_name} ON {self.table} "
            f"USING ivfflat (embedding_vec vector_cosine_ops)"
        )

    def ensure_schema(self) -> None:
        """
        Create the vector extension, the chunk table and, if possible, the index.

        Raises:
            SchemaError: If the extension or table cannot be created.
        """
        try:
            with self._pool.connection() as conn:
                conn.execute("CREATE EXTENSION IF NOT EXISTS vector")
                conn.execute(
                    f"""
                    CREATE TABLE IF NOT EXISTS {self.table} (
                        id SERIAL PRIMARY KEY,
                        session_id TEXT NOT NULL,
                        chunk_index INTEGER,
                        summary TEXT,
                        raw_excerpt TEXT,
                        embedding_vec vector({self.dimensions}),
                        start_time TIMESTAMPTZ,
                        end_time TIMESTAMPTZ,
                        tools_used TEXT[],
                        project TEXT,
                        classification TEXT,
                        token_count INTEGER
                    )
                    """
                )
        except psycopg.Error as e:
            logger.error(f"Failed to create {self.table}: {e}")
            raise SchemaError(f"Failed to create {self.table}: {e}") from e

        try:
            with self._connection() as conn:
                conn.execute(self._create_index_sql())
        except psycopg.Error as e:
            # IVFFlat needs a minimum population; maybe_rebuild_index retries later
            logger.warning(f"IVFFlat index creation deferred (need more data): {e}")

    def already_indexed_sessions(self) -> set[str]:
        """Distinct session ids with at least one stored chunk."""
        with self._pool.connection() as conn:
            rows = conn.execute(f"SELECT DISTINCT session_id FROM {self.table}").fetchall()
        return {row["session_id"] for row in rows}

    def insert(self, record: ChunkRecord) -> None:
        """Append one chunk record. No upsert: duplicates are the caller's concern."""
        embedding = np.asarray(record.embedding, dtype=np.float32)
        if embedding.shape != (self.dimensions,):
            raise EmbeddingDimensionError(self.dimensions, embedding.size)

        with self._connection() as conn:
            conn.execute(
                f"""
                INSERT INTO {self.table} (
                    session_id, chunk_index, summary, raw_excerpt, embedding_vec,
                    start_time, end_time, tools_used, project, classification, token_count
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    record.session_id,
                    record.chunk_index,
                    record.summary,
                    record.raw_excerpt[:RAW_EXCERPT_CHARS],
                    embedding,
                    record.start_time,
                    record.end_time,
                    record.tools_used,
                    record.project,
                    record.classification,
                    record.token_count,
                ),
            )

    def count_embedded(self) -> int:
        """Number of rows with a populated embedding."""
        with self._pool.connection() as conn:
            row = conn.execute(
                f"SELECT COUNT(*) AS c FROM {self.table} WHERE embedding_vec IS NOT NULL"
            ).fetchone()
        return row["c"] if row else 0

    def maybe_rebuild_index(self) -> bool:
        """
        Drop and recreate the similarity index once enough rows exist.

        Returns:
            True if the index was rebuilt, False if below threshold or the
            rebuild failed (failures are logged, never raised).
        """
        try:
            count = self.count_embedded()
            if count < self.min_rows_for_index:
                logger.info(
                    f"Skipping index rebuild: {count} embedded rows "
                    f"(need {self.min_rows_for_index})"
                )
                return False

            logger.info(f"Rebuilding IVFFlat index over {count} rows")
            with self._connection() as conn:
                conn.execute(f"DROP INDEX IF EXISTS {self.index_name}")
                conn.execute(self._create_index_sql())
            return True
        except psycopg.Error as e:
            logger.warning(f"Index rebuild note: {e}")
            return False

    def query(self, embedding: np.ndarray, limit: int) -> list[dict[str, Any]]:
        """
        Nearest chunks by cosine distance, closest first.

        Each row carries session_id, chunk_index, summary, raw_excerpt,
        tools_used, project, classification and similarity (1 - distance).
        A missing or empty table yields an empty list.
        """
        vector = np.asarray(embedding, dtype=np.float32)
        try:
            with self._connection() as conn:
                return conn.execute(
                    f"""
                    SELECT session_id, chunk_index, summary, raw_excerpt, tools_used,
                           project, classification,
                           1 - (embedding_vec <=> %s) AS similarity
                    FROM {self.table}
                    WHERE embedding_vec IS NOT NULL
                    ORDER BY embedding_vec <=> %s
                    LIMIT %s
                    """,
                    (vector, vector, limit),
                ).fetchall()
        except psycopg.ProgrammingError as e:
            # Missing extension or table: nothing has been indexed yet
            logger.info(f"No searchable chunks in {self.table}: {e}")
            return []
