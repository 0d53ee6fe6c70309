"""
docchat Agents Package

- GenerationModel: Lazily-loaded LLM that answers from retrieved context
- FallbackResponder: Deterministic template answers when the model path fails
"""

from .fallback_responder import FallbackResponder
from .generation_agent import GenerationModel

__all__ = [
    "FallbackResponder",
    "GenerationModel",
]
