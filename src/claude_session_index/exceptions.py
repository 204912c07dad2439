"""
Custom exceptions for the session indexing pipeline.

Recoverable conditions (malformed log lines, summarizer failures) never
surface as exceptions; everything here is either fatal to a single
call or fatal to a whole indexing run.
"""


class SessionIndexError(Exception):
    """Base exception for all session index errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class EmbeddingError(SessionIndexError):
    """Raised when the embedding endpoint returns an unusable response."""

    def __init__(self, message: str, status_code: int | None = None):
        details = {}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, details)
        self.status_code = status_code


class EmbeddingServiceUnavailable(EmbeddingError):
    """Raised when the embedding service cannot be reached at all."""


class EmbeddingDimensionError(EmbeddingError):
    """Raised when the embedder's vector length does not match the store."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"Embedding dimension mismatch: expected {expected}, got {actual}")
        self.details.update({"expected": expected, "actual": actual})
        self.expected = expected
        self.actual = actual


class SchemaError(SessionIndexError):
    """Raised when the chunk table cannot be created."""


class IndexRunLockedError(SessionIndexError):
    """Raised when another indexing run already holds the run lock."""

    def __init__(self, lock_path: str):
        super().__init__(
            f"Another indexing run is in progress (lock held: {lock_path})",
            {"lock_path": lock_path},
        )
        self.lock_path = lock_path
