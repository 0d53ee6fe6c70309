"""Process-wide owner of the embedding and generation model handles.

The registry is the only holder of the two handles. Tests build their own
registry with stub loaders instead of touching module globals.
"""

import asyncio
from functools import lru_cache
from typing import Optional

from loguru import logger

from agents.generation_agent import GenerationModel
from config.config import Settings, get_settings
from config.embedding_config import make_embedding_loader
from config.generation_config import generation_time_budget, make_generation_loader
from rag.embeddings import EmbeddingModel

LOADING_MESSAGE = "Loading AI models..."
READY_MESSAGE = "AI models loaded (using RAG)"


class ModelRegistry:
    """Owns one EmbeddingModel and one GenerationModel.

    Args:
        embedding: Embedding handle shared by every conversation.
        generation: Generation handle shared by every conversation.
    """

    def __init__(self, embedding: EmbeddingModel, generation: GenerationModel):
        self._embedding = embedding
        self._generation = generation

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ModelRegistry":
        settings = settings or get_settings()
        return cls(
            embedding=EmbeddingModel(loader=make_embedding_loader(settings)),
            generation=GenerationModel(
                loader=make_generation_loader(settings),
                timeout=generation_time_budget(settings),
                max_new_tokens=settings.GENERATION_MAX_NEW_TOKENS,
                temperature=settings.GENERATION_TEMPERATURE,
            ),
        )

    @property
    def embedding(self) -> EmbeddingModel:
        return self._embedding

    @property
    def generation(self) -> GenerationModel:
        return self._generation

    def is_embedding_model_loading(self) -> bool:
        return self._embedding.is_initializing()

    def is_generation_model_loading(self) -> bool:
        return self._generation.is_initializing()

    def is_model_path_ready(self) -> bool:
        return self._embedding.is_ready() and self._generation.is_ready()

    def status_message(self) -> str:
        """Short loading-state text for polling callers."""
        if self.is_embedding_model_loading() or self.is_generation_model_loading():
            return LOADING_MESSAGE
        if self.is_model_path_ready():
            return READY_MESSAGE
        return ""

    def status(self) -> dict:
        return {
            "embedding": self._embedding.state.value,
            "generation": self._generation.state.value,
            "embedding_loading": self.is_embedding_model_loading(),
            "generation_loading": self.is_generation_model_loading(),
            "ready": self.is_model_path_ready(),
            "message": self.status_message(),
        }

    async def warm_up(self) -> bool:
        """Initialise both models. Failures are logged, not raised.

        Returns:
            True if both models are ready afterwards.
        """
        results = await asyncio.gather(
            self._embedding.initialize(),
            self._generation.initialize(),
            return_exceptions=True,
        )
        for handle, result in zip((self._embedding, self._generation), results):
            if isinstance(result, Exception):
                logger.warning("⚠️ {} warm-up failed: {}", handle.name, result)
        return self.is_model_path_ready()


@lru_cache()
def get_model_registry() -> ModelRegistry:
    """Return the process-wide registry built from application settings."""
    return ModelRegistry.from_settings()
