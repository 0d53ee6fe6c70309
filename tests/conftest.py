"""
Pytest configuration and fixtures.

Model backends are replaced by small deterministic stubs injected through
ModelRegistry, so no test loads ONNX models or calls an LLM provider.
"""

import os
from typing import List, Optional

import pytest
from loguru import logger

os.environ["TOKENIZERS_PARALLELISM"] = "false"

from agents.generation_agent import GenerationModel  # noqa: E402
from config.config import Settings  # noqa: E402
from rag.embeddings import EmbeddingModel  # noqa: E402
from services.model_registry import ModelRegistry  # noqa: E402
from services.rag_service import RAGService  # noqa: E402

VOCABULARY = (
    "revenue",
    "growth",
    "market",
    "neural",
    "network",
    "training",
    "budget",
    "risk",
)


class StubEmbeddingBackend:
    """Bag-of-words embedder over a fixed vocabulary.

    Each dimension counts occurrences of one vocabulary word, so texts that
    share words with a query score higher. Every embedded text is recorded.
    """

    embed_dim = len(VOCABULARY)

    def __init__(self) -> None:
        self.calls: List[str] = []

    def get_text_embedding_batch(self, texts: List[str]) -> List[List[float]]:
        self.calls.extend(texts)
        vectors = []
        for text in texts:
            words = text.lower().replace("?", " ").replace(".", " ").split()
            vectors.append([float(words.count(term)) for term in VOCABULARY])
        return vectors


class StubGenerationBackend:
    """Echoes the prompt followed by a fixed answer, like a raw causal LM."""

    def __init__(self, answer: str = "The document reports strong revenue growth.") -> None:
        self.answer = answer
        self.error: Optional[Exception] = None
        self.prompts: List[str] = []

    async def generate(self, prompt: str, *, max_tokens: int = 100, temperature: float = 0.7) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return f"{prompt} {self.answer}"


def make_document(words_per_topic: int = 300) -> str:
    """Three chunk-sized sections with distinct vocabulary."""
    finance = " ".join(["revenue growth"] * (words_per_topic // 2))
    ml = " ".join(["neural network training"] * (words_per_topic // 3))
    ops = " ".join(["budget risk"] * (words_per_topic // 2))
    return f"{finance} {ml} {ops}"


@pytest.fixture
def settings():
    return Settings(_env_file=None, CHUNK_SIZE=300, RETRIEVAL_TOP_K=3, MAX_CACHED_INDEXES=4)


@pytest.fixture
def embedding_backend():
    return StubEmbeddingBackend()


@pytest.fixture
def generation_backend():
    return StubGenerationBackend()


@pytest.fixture
def registry(embedding_backend, generation_backend):
    return ModelRegistry(
        embedding=EmbeddingModel(loader=lambda: embedding_backend),
        generation=GenerationModel(loader=lambda: generation_backend, timeout=1.0),
    )


@pytest.fixture
def rag_service(registry, settings):
    return RAGService(registry, settings=settings)


@pytest.fixture
def document_text():
    return make_document()


@pytest.fixture
def stub_embedding_backend_cls():
    return StubEmbeddingBackend


@pytest.fixture
def stub_generation_backend_cls():
    return StubGenerationBackend


@pytest.fixture
def caplog(caplog):
    """Route loguru records into pytest's caplog handler."""
    handler_id = logger.add(caplog.handler, format="{message}", level=0)
    yield caplog
    logger.remove(handler_id)
