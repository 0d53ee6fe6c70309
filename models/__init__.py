from .state import (
    Answer,
    AnswerStatus,
    ChatMessage,
    Chunk,
    DocumentText,
    PipelineStage,
    RetrievedChunk,
)

__all__ = [
    "Answer",
    "AnswerStatus",
    "ChatMessage",
    "Chunk",
    "DocumentText",
    "PipelineStage",
    "RetrievedChunk",
]
