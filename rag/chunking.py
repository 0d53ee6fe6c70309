"""
Word-based document chunking for the docchat RAG pipeline.

Document text is split on whitespace into groups of ``chunk_size`` words. The
final chunk may be shorter. Joining the chunks with single spaces reproduces
the original word sequence (whitespace runs collapse to one space).
"""

import re
from typing import List

from loguru import logger

from services.exceptions import EmptyDocument

DEFAULT_CHUNK_SIZE = 300

_WHITESPACE = re.compile(r"\s+")


def split_words(text: str) -> List[str]:
    """Split text into words on any run of whitespace."""
    return [word for word in _WHITESPACE.split(text) if word]


def split_into_chunks(text: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> List[str]:
    """
    Split document text into chunks of at most ``chunk_size`` words.

    Args:
        text: Plain document text.
        chunk_size: Number of words per chunk (default: 300).

    Returns:
        Ordered list of chunk strings.

    Raises:
        EmptyDocument: If the text is empty or whitespace-only.
        ValueError: If chunk_size is not a positive integer.
    """
    if not isinstance(chunk_size, int) or chunk_size <= 0:
        raise ValueError("`chunk_size` must be a positive integer.")

    if text is None or not text.strip():
        raise EmptyDocument("Cannot chunk empty or whitespace-only document text")

    words = split_words(text)
    chunks = [
        " ".join(words[i : i + chunk_size]) for i in range(0, len(words), chunk_size)
    ]

    logger.debug(
        "Chunked document: {} words -> {} chunks (chunk_size={})",
        len(words),
        len(chunks),
        chunk_size,
    )
    return chunks
