"""Text embedding via a local Ollama server."""

import logging
import os

import numpy as np
import requests

from .config import (
    DEFAULT_EMBED_MODEL,
    DEFAULT_OLLAMA_URL,
    EMBED_MODEL_ENV,
    EMBED_TIMEOUT_SECONDS,
    EMBEDDING_DIM,
    HEALTH_CHECK_TIMEOUT_SECONDS,
    OLLAMA_URL_ENV,
)
from .exceptions import EmbeddingDimensionError, EmbeddingError, EmbeddingServiceUnavailable

logger = logging.getLogger(__name__)


class OllamaEmbedder:
    """
    Client for Ollama's embeddings endpoint.

    Failures are never swallowed: a chunk without an embedding cannot be
    stored, so every error reaches the caller as an EmbeddingError.
    """

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        dimensions: int = EMBEDDING_DIM,
        session: requests.Session | None = None,
    ):
        self.base_url = (base_url or os.environ.get(OLLAMA_URL_ENV) or DEFAULT_OLLAMA_URL).rstrip(
            "/"
        )
        self.model = model or os.environ.get(EMBED_MODEL_ENV) or DEFAULT_EMBED_MODEL
        self.dimensions = dimensions
        self._session = session or requests.Session()

    def health_check(self) -> None:
        """
        Verify the service is reachable.

        Raises:
            EmbeddingServiceUnavailable: If the server does not answer with 200.
        """
        try:
            response = self._session.get(
                f"{self.base_url}/api/tags", timeout=HEALTH_CHECK_TIMEOUT_SECONDS
            )
        except requests.RequestException as e:
            raise EmbeddingServiceUnavailable(f"Ollama is not reachable at {self.base_url}: {e}") from e
        if response.status_code != 200:
            raise EmbeddingServiceUnavailable(
                f"Ollama health check failed: {response.status_code}",
                status_code=response.status_code,
            )

    def embed(self, text: str) -> np.ndarray:
        """
        Embed a single text.

        Returns:
            float32 vector of length self.dimensions.

        Raises:
            EmbeddingServiceUnavailable: On connection errors and timeouts.
            EmbeddingError: On a non-200 status or a response without "embedding".
            EmbeddingDimensionError: If the vector length is not self.dimensions.
        """
        try:
            response = self._session.post(
                f"{self.base_url}/api/embeddings",
                json={"model": self.model, "prompt": text},
                timeout=EMBED_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            raise EmbeddingServiceUnavailable(f"Ollama is not reachable at {self.base_url}: {e}") from e

        if response.status_code != 200:
            raise EmbeddingError(
                f"Ollama error: {response.status_code}", status_code=response.status_code
            )

        try:
            data = response.json()
        except ValueError as e:
            raise EmbeddingError(f"Invalid JSON from Ollama: {e}") from e

        embedding = data.get("embedding") if isinstance(data, dict) else None
        if not embedding:
            raise EmbeddingError("No embedding in response")

        vector = np.asarray(embedding, dtype=np.float32)
        if vector.shape != (self.dimensions,):
            raise EmbeddingDimensionError(self.dimensions, vector.size)
        return vector
