"""Embedding backend loader.

Builds the ONNX embedding backend on first use. The import of onnxruntime is
deferred to load time so that the application starts (and answers through the
fallback responder) even when the runtime or the model files are missing.

Usage:
    from config.embedding_config import make_embedding_loader
    from rag.embeddings import EmbeddingModel

    model = EmbeddingModel(loader=make_embedding_loader(get_settings()))
"""

from __future__ import annotations

import time
from typing import Any, Callable

import psutil
from loguru import logger

from config.config import Settings
from services.exceptions import EmbeddingFailure


def load_embedding_backend(settings: Settings) -> Any:
    """Construct the ONNX embedding backend.

    Raises:
        EmbeddingFailure: If onnxruntime is not installed or the model files
            are missing.
    """
    start = time.time()

    try:
        from config.onnx_embedding import ONNXEmbeddingModel
    except ImportError as e:
        logger.critical(
            "onnxruntime is not installed. Embedding features will be disabled. "
            "Install with: pip install onnxruntime. Error: {}",
            e,
        )
        raise EmbeddingFailure(f"onnxruntime unavailable: {e}") from e

    logger.info("Initializing Embedding Model: {} (ONNX Optimized)", settings.EMBEDDING_MODEL)

    try:
        model = ONNXEmbeddingModel(
            model_name=settings.EMBEDDING_MODEL,
            cache_dir=settings.ONNX_CACHE_DIR,
            num_threads=settings.EMBEDDING_THREADS,
        )
    except RuntimeError as e:
        logger.error(
            "Embedding model file missing: {}. "
            "Run 'python scripts/setup_onnx.py' to download and convert the model.",
            e,
        )
        raise EmbeddingFailure(str(e)) from e

    mem_mb = psutil.Process().memory_info().rss / (1024 * 1024)
    logger.info(
        "Embedding Ready: {:.2f}s | Dim: {} | RAM: {:.1f}MB",
        time.time() - start,
        model.embed_dim,
        mem_mb,
    )
    return model


def make_embedding_loader(settings: Settings) -> Callable[[], Any]:
    """Return a zero-argument loader bound to ``settings``."""

    def _loader() -> Any:
        return load_embedding_backend(settings)

    return _loader
