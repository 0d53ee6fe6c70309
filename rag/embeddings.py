"""
Embedding model handle for the docchat RAG pipeline.

Wraps an embedding backend (the ONNX model in production, a stub in tests)
behind the lazy load-once lifecycle and normalises whatever the backend
returns into a dense 1-D float32 vector. All output-shape handling lives here
so the rest of the pipeline only ever sees ``numpy.ndarray`` vectors of one
fixed dimensionality.
"""

import asyncio
from typing import Any, Callable, Optional

import numpy as np
from loguru import logger

from services.exceptions import EmbeddingFailure
from utils.lazy_model import LazyModel


class EmbeddingModel(LazyModel):
    """
    Lazily-initialised text embedding model.

    The backend must expose ``get_text_embedding_batch(texts) -> vectors``.
    The dimensionality ``D`` is taken from the backend's ``embed_dim`` when it
    declares one, otherwise from the first vector produced; it never changes
    afterwards.

    Usage:
        model = EmbeddingModel(loader=lambda: ONNXEmbeddingModel())
        vector = await model.embed("What does the author recommend?")
    """

    name = "embedding model"
    failure_type = EmbeddingFailure

    def __init__(self, loader: Callable[[], Any]):
        super().__init__(loader)
        self.dimension: Optional[int] = None

    def _on_loaded(self, backend: Any) -> None:
        if not hasattr(backend, "get_text_embedding_batch"):
            raise EmbeddingFailure(f"Invalid embedding backend type: {type(backend)}")

        declared = getattr(backend, "embed_dim", None)
        if isinstance(declared, int) and declared > 0:
            self.dimension = declared

    async def embed(self, text: str) -> np.ndarray:
        """
        Embed a single text.

        Triggers model initialisation on first use.

        Returns:
            1-D float32 vector of length ``dimension``.

        Raises:
            EmbeddingFailure: If the model cannot be loaded or inference fails
                or returns a malformed vector.
        """
        backend = await self.initialize()

        try:
            output = await asyncio.to_thread(
                backend.get_text_embedding_batch, [text]
            )
        except Exception as e:
            logger.exception("Embedding inference failed")
            raise EmbeddingFailure(f"Embedding inference failed: {e}") from e

        return self._to_vector(output)

    def _to_vector(self, output: Any) -> np.ndarray:
        """Coerce backend output for a single text into a 1-D float32 vector."""
        try:
            arr = np.asarray(output, dtype=np.float32)
        except (TypeError, ValueError) as e:
            raise EmbeddingFailure(f"Malformed embedding output: {e}") from e

        # Batch of one: (1, D) -> (D,)
        if arr.ndim == 2 and arr.shape[0] == 1:
            arr = arr.reshape(arr.shape[1])

        if arr.ndim != 1 or arr.shape[0] == 0:
            raise EmbeddingFailure(
                f"Embedding has incompatible shape {arr.shape}, expected (D,)"
            )

        if not np.all(np.isfinite(arr)):
            raise EmbeddingFailure("Embedding contains non-finite values")

        if self.dimension is None:
            self.dimension = int(arr.shape[0])
            logger.debug("Embedding dimension fixed at {}", self.dimension)
        elif arr.shape[0] != self.dimension:
            raise EmbeddingFailure(
                f"Embedding dimension mismatch: expected ({self.dimension},), got {arr.shape}"
            )

        return arr
