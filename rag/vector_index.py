"""
In-memory vector index for one embedding context.

Exact linear-scan cosine similarity over a dense matrix. Document-scale
indexes hold tens to low hundreds of chunks, so no approximate structure is
needed.
"""

from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np
from loguru import logger

from models.state import Chunk, RetrievedChunk
from services.exceptions import IndexNotReady


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors; 0.0 when either has zero magnitude."""
    vec_a = np.asarray(a, dtype=np.float64)
    vec_b = np.asarray(b, dtype=np.float64)
    if vec_a.shape != vec_b.shape:
        raise ValueError("Vectors must have the same dimensions")

    norm = np.linalg.norm(vec_a) * np.linalg.norm(vec_b)
    if norm == 0.0:
        return 0.0
    return float(np.dot(vec_a, vec_b) / norm)


@dataclass(frozen=True)
class _Snapshot:
    texts: Tuple[str, ...]
    matrix: np.ndarray  # (n, D)
    norms: np.ndarray  # (n,)


_EMPTY = _Snapshot(texts=(), matrix=np.zeros((0, 0)), norms=np.zeros(0))


class VectorIndex:
    """Chunk texts and their embeddings for one document or project context.

    ``build`` replaces the whole contents with a single reference swap, so a
    concurrent ``query`` sees either the previous snapshot or the new one,
    never a mix of the two.
    """

    def __init__(self) -> None:
        self._snapshot = _EMPTY

    def __len__(self) -> int:
        return len(self._snapshot.texts)

    @property
    def dimension(self) -> int:
        return int(self._snapshot.matrix.shape[1]) if len(self) else 0

    def is_ready(self) -> bool:
        return len(self) > 0

    def clear(self) -> None:
        self._snapshot = _EMPTY

    def build(self, chunks: Sequence[Chunk]) -> None:
        """Replace the index contents with ``chunks``.

        Raises:
            ValueError: If a chunk has no embedding or dimensions differ.
        """
        texts: List[str] = []
        vectors: List[np.ndarray] = []
        for i, chunk in enumerate(chunks):
            if not chunk.is_embedded:
                raise ValueError(f"Chunk {i} has no embedding")
            vector = np.asarray(chunk.embedding, dtype=np.float64)
            if vectors and vector.shape != vectors[0].shape:
                raise ValueError(
                    f"Chunk {i} has dimension {vector.shape[0]}, expected {vectors[0].shape[0]}"
                )
            texts.append(chunk.text)
            vectors.append(vector)

        if not vectors:
            self._snapshot = _EMPTY
            logger.warning("VectorIndex built with zero chunks")
            return

        matrix = np.vstack(vectors)
        self._snapshot = _Snapshot(
            texts=tuple(texts),
            matrix=matrix,
            norms=np.linalg.norm(matrix, axis=1),
        )
        logger.debug(
            "VectorIndex built: {} chunks, dim={}", len(texts), matrix.shape[1]
        )

    def query(self, query_vector: Sequence[float], k: int) -> List[RetrievedChunk]:
        """Return the ``k`` chunks most similar to ``query_vector``.

        Results are ordered by descending cosine similarity; equal scores keep
        the original chunk order. If ``k`` exceeds the index size all chunks
        are returned.

        Raises:
            IndexNotReady: If the index holds no chunks.
            ValueError: If the query dimension differs from the index.
        """
        snapshot = self._snapshot
        if not snapshot.texts:
            raise IndexNotReady()

        if k <= 0:
            return []

        vector = np.asarray(query_vector, dtype=np.float64)
        if vector.shape != (snapshot.matrix.shape[1],):
            raise ValueError(
                f"Query vector has shape {vector.shape}, expected ({snapshot.matrix.shape[1]},)"
            )

        denominators = snapshot.norms * np.linalg.norm(vector)
        dots = snapshot.matrix @ vector
        scores = np.divide(
            dots,
            denominators,
            out=np.zeros_like(dots),
            where=denominators != 0.0,
        )

        order = np.argsort(-scores, kind="stable")[:k]
        return [
            RetrievedChunk(
                text=snapshot.texts[i], score=float(scores[i]), position=int(i)
            )
            for i in order
        ]
