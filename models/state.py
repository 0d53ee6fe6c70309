from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Chunk(BaseModel):
    """A slice of document text, optionally carrying its embedding."""

    text: str
    embedding: Optional[List[float]] = None

    @property
    def is_embedded(self) -> bool:
        return self.embedding is not None and len(self.embedding) > 0


class RetrievedChunk(BaseModel):
    """A chunk returned by similarity search.

    ``position`` is the chunk's index in the sequence it was built from and is
    used as the tie-breaker for equal scores.
    """

    text: str
    score: float
    position: int

    model_config = ConfigDict(frozen=True)


class PipelineStage(str, Enum):
    IDLE = "idle"
    BUILDING_INDEX = "building_index"
    RETRIEVING = "retrieving"
    GENERATING = "generating"
    DONE = "done"
    FALLBACK = "fallback"


class AnswerStatus(str, Enum):
    GROUNDED = "grounded"
    NO_MATCH = "no_match"
    FALLBACK = "fallback"


class Answer(BaseModel):
    """Answer returned to the chat layer.

    ``grounded`` is True only for text produced by the generation model from
    at least one retrieved chunk. Callers use it to flag template and error
    answers.
    """

    text: str
    grounded: bool
    status: AnswerStatus
    failed_stage: Optional[PipelineStage] = None
    sources: List[RetrievedChunk] = Field(default_factory=list)
    timing_breakdown: Dict[str, float] = Field(default_factory=dict)

    @field_validator("text")
    @classmethod
    def _text_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("Answer text must not be blank")
        return value


class ChatMessage(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)


class DocumentText(BaseModel):
    """Already-extracted plain text of one document."""

    name: str
    content: Optional[str] = None

    @property
    def has_content(self) -> bool:
        return bool(self.content)


__all__ = [
    "Answer",
    "AnswerStatus",
    "ChatMessage",
    "Chunk",
    "DocumentText",
    "PipelineStage",
    "RetrievedChunk",
]
