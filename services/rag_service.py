"""RAG service: answers a question from one document or project context.

Responsibilities:
1. Index building (chunking + embedding), at most once per distinct context
2. Retrieval of the top-K chunks for the question
3. Generation from the retrieved context window
4. Fallback to the deterministic responder when any model step fails

Only misuse (empty context text) escapes ``answer_query``; every model-path
failure becomes a template answer with ``grounded=False``.
"""

import asyncio
import hashlib
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, List, Optional

from loguru import logger

from agents.fallback_responder import FallbackResponder
from config.config import Settings, get_settings
from models.state import Answer, AnswerStatus, Chunk, PipelineStage
from rag.chunking import split_into_chunks
from rag.vector_index import VectorIndex
from services.exceptions import EmptyDocument, IndexNotReady
from services.model_registry import ModelRegistry
from utils.lazy_model import retrieve_task_failure

NOT_FOUND_MESSAGE = (
    "I couldn't find relevant information in the document to answer your question."
)


@dataclass
class _IndexEntry:
    index: VectorIndex
    build_task: Optional[asyncio.Task] = None


class RAGService:
    """Coordinates chunking, embedding, retrieval, generation and fallback.

    Each distinct context text (identified by its SHA-256) gets its own
    VectorIndex. Concurrent requests for a context that is still being
    indexed await the same build instead of starting another.
    """

    def __init__(
        self,
        registry: ModelRegistry,
        settings: Optional[Settings] = None,
        fallback: Optional[FallbackResponder] = None,
    ):
        settings = settings or get_settings()
        self.registry = registry
        self.fallback = fallback or FallbackResponder()
        self.chunk_size = settings.CHUNK_SIZE
        self.top_k = settings.RETRIEVAL_TOP_K
        self.max_cached_indexes = settings.MAX_CACHED_INDEXES

        self._indexes: "OrderedDict[str, _IndexEntry]" = OrderedDict()
        self.build_count = 0

        logger.info(
            "RAGService initialized: chunk_size={} top_k={} max_cached_indexes={}",
            self.chunk_size,
            self.top_k,
            self.max_cached_indexes,
        )

    # ------------------------------------------------------------------
    # Status queries
    # ------------------------------------------------------------------
    def is_embedding_model_loading(self) -> bool:
        return self.registry.is_embedding_model_loading()

    def is_generation_model_loading(self) -> bool:
        return self.registry.is_generation_model_loading()

    def is_model_path_ready(self) -> bool:
        return self.registry.is_model_path_ready()

    @staticmethod
    def context_key(context_text: str) -> str:
        return hashlib.sha256(context_text.encode("utf-8")).hexdigest()

    def is_context_indexed(self, context_text: str) -> bool:
        entry = self._indexes.get(self.context_key(context_text))
        return entry is not None and entry.build_task is None

    # ------------------------------------------------------------------
    # Index management
    # ------------------------------------------------------------------
    async def _ensure_index(self, context_text: str) -> VectorIndex:
        key = self.context_key(context_text)
        entry = self._indexes.get(key)

        if entry is not None:
            self._indexes.move_to_end(key)
            if entry.build_task is not None:
                logger.debug("Awaiting in-flight index build for context {}", key[:12])
                await asyncio.shield(entry.build_task)
            return entry.index

        entry = _IndexEntry(index=VectorIndex())
        entry.build_task = asyncio.create_task(self._build(key, entry, context_text))
        entry.build_task.add_done_callback(retrieve_task_failure)
        self._indexes[key] = entry
        self._evict()

        await asyncio.shield(entry.build_task)
        return entry.index

    async def _build(self, key: str, entry: _IndexEntry, context_text: str) -> None:
        try:
            texts = split_into_chunks(context_text, self.chunk_size)
            chunks: List[Chunk] = []
            for text in texts:
                vector = await self.registry.embedding.embed(text)
                chunks.append(Chunk(text=text, embedding=vector.tolist()))
            entry.index.build(chunks)
            self.build_count += 1
            logger.info("Processed {} chunks with embeddings", len(chunks))
        except Exception:
            # Forget the failed build so the next request retries it
            if self._indexes.get(key) is entry:
                del self._indexes[key]
            raise
        finally:
            entry.build_task = None

    def _evict(self) -> None:
        while len(self._indexes) > self.max_cached_indexes:
            victim = next(
                (k for k, e in self._indexes.items() if e.build_task is None), None
            )
            if victim is None:
                break
            del self._indexes[victim]
            logger.debug("Evicted index for context {}", victim[:12])

    async def prepare_context(self, context_text: str) -> bool:
        """Build the index for ``context_text`` ahead of the first question.

        Returns:
            True if the index is ready, False if building it failed.

        Raises:
            EmptyDocument: If the context text is empty.
        """
        self._require_text(context_text)
        try:
            await self._ensure_index(context_text)
        except Exception as e:
            logger.warning("⚠️ Context pre-processing failed: {}", e)
            return False
        return True

    # ------------------------------------------------------------------
    # Question answering
    # ------------------------------------------------------------------
    @staticmethod
    def _require_text(context_text: str) -> None:
        if context_text is None or not context_text.strip():
            raise EmptyDocument("Context text is empty")

    async def answer_query(self, context_text: str, query: str) -> Answer:
        """Answer ``query`` from ``context_text``.

        Args:
            context_text: Extracted plain text of a document or project.
            query: Non-empty user question.

        Returns:
            Answer with ``grounded=True`` only when generated from retrieved
            chunks.

        Raises:
            EmptyDocument: If the context text is empty or whitespace-only.
        """
        self._require_text(context_text)
        timing_breakdown: Dict[str, float] = {}

        # Stage 1: Index building
        stage_start = time.perf_counter()
        try:
            index = await self._ensure_index(context_text)
        except Exception as e:
            logger.exception("Index building failed: {}", e)
            return self._fallback_answer(
                context_text, query, PipelineStage.BUILDING_INDEX, timing_breakdown
            )
        timing_breakdown["indexing"] = time.perf_counter() - stage_start

        # Stage 2: Retrieval
        stage_start = time.perf_counter()
        try:
            query_vector = await self.registry.embedding.embed(query)
            retrieved = index.query(query_vector, self.top_k)
        except IndexNotReady:
            logger.warning("⚠️ Index not ready for retrieval")
            return self._not_found_answer(timing_breakdown)
        except Exception as e:
            logger.exception("Retrieval failed: {}", e)
            return self._fallback_answer(
                context_text, query, PipelineStage.RETRIEVING, timing_breakdown
            )
        timing_breakdown["retrieval"] = time.perf_counter() - stage_start

        if not retrieved:
            logger.warning("⚠️ No chunks retrieved")
            return self._not_found_answer(timing_breakdown)

        logger.info(
            "✅ Retrieved {} chunks in {:.3f}s (top score {:.3f})",
            len(retrieved),
            timing_breakdown["retrieval"],
            retrieved[0].score,
        )

        # Stage 3: Generation
        stage_start = time.perf_counter()
        context = "\n\n".join(chunk.text for chunk in retrieved)
        try:
            text = await self.registry.generation.generate(context, query)
        except Exception as e:
            timing_breakdown["generation"] = time.perf_counter() - stage_start
            logger.error("Generation failed: {}", e)
            return self._fallback_answer(
                context_text, query, PipelineStage.GENERATING, timing_breakdown
            )
        timing_breakdown["generation"] = time.perf_counter() - stage_start
        logger.info("✅ Generation completed in {:.3f}s", timing_breakdown["generation"])

        return Answer(
            text=text,
            grounded=True,
            status=AnswerStatus.GROUNDED,
            sources=retrieved,
            timing_breakdown=timing_breakdown,
        )

    def _fallback_answer(
        self,
        context_text: str,
        query: str,
        failed_stage: PipelineStage,
        timing_breakdown: Dict[str, float],
    ) -> Answer:
        logger.warning("Falling back to template answer (failed at {})", failed_stage.value)
        return Answer(
            text=self.fallback.respond(context_text, query),
            grounded=False,
            status=AnswerStatus.FALLBACK,
            failed_stage=failed_stage,
            timing_breakdown=timing_breakdown,
        )

    @staticmethod
    def _not_found_answer(timing_breakdown: Dict[str, float]) -> Answer:
        return Answer(
            text=NOT_FOUND_MESSAGE,
            grounded=False,
            status=AnswerStatus.NO_MATCH,
            failed_stage=PipelineStage.RETRIEVING,
            timing_breakdown=timing_breakdown,
        )

    async def close(self) -> None:
        """Drop cached indexes."""
        self._indexes.clear()


__all__ = ["NOT_FOUND_MESSAGE", "RAGService"]
