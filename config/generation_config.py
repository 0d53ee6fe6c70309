"""Generation backend loader.

The LiteLLM router is imported on first use; litellm is slow to import and the
chat layer must stay responsive while it loads.
"""

from __future__ import annotations

from typing import Any, Callable

from loguru import logger

from config.config import Settings
from services.exceptions import GenerationFailure

# Upper bound of the backoff sleep between retries of one model, in seconds
RETRY_WAIT_MAX = 4.0


def load_generation_backend(settings: Settings) -> Any:
    """Construct the LiteLLM generation backend.

    Raises:
        GenerationFailure: If no generation model is configured.
    """
    if not settings.GENERATION_MODEL:
        raise GenerationFailure("GENERATION_MODEL is not configured")

    from utils.llm_router import LLMRouter

    router = LLMRouter(settings)
    logger.info(
        "Generation backend ready: {} (fallback: {})",
        settings.GENERATION_MODEL,
        settings.GENERATION_FALLBACK,
    )
    return router


def make_generation_loader(settings: Settings) -> Callable[[], Any]:
    """Return a zero-argument loader bound to ``settings``."""

    def _loader() -> Any:
        return load_generation_backend(settings)

    return _loader


def generation_time_budget(settings: Settings) -> float:
    """Seconds a whole generation call may take.

    Covers every attempt on the primary model and, when configured, on the
    fallback model, plus the backoff sleeps between retries. Each single
    attempt is bounded by ``GENERATION_TIMEOUT`` inside the router.
    """
    attempts = settings.GENERATION_MAX_ATTEMPTS
    models = 2 if settings.GENERATION_FALLBACK else 1
    per_model = attempts * settings.GENERATION_TIMEOUT + (attempts - 1) * RETRY_WAIT_MAX
    return float(models * per_model)
