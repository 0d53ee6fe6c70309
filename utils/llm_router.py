"""LiteLLM router used as the generation backend.

Wraps ``litellm.acompletion`` with a primary and an optional fallback model
taken from settings. Transient errors (timeouts, connection failures) are
retried per model with exponential backoff before moving on.

Usage example:
    router = LLMRouter(get_settings())
    content = await router.generate("Context: ...\n\nQuestion: ...\n\nAnswer:")
"""

import asyncio
from typing import Optional

import httpx
import litellm
from loguru import logger
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from config.config import Settings, get_settings
from config.generation_config import RETRY_WAIT_MAX


def is_retryable_exception(exc: BaseException) -> bool:
    """Classify LLM call errors: only timeouts and network failures are retried."""
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return True
    if isinstance(exc, (httpx.ConnectError, httpx.NetworkError)):
        return True
    if isinstance(exc, (litellm.Timeout, litellm.APIConnectionError)):
        return True
    return False


class LLMRouter:
    """A small router for LiteLLM calls that handles primary+fallback selection."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        settings = settings or get_settings()
        if not settings.GENERATION_MODEL:
            raise ValueError("GENERATION_MODEL is not configured")

        self._primary = (settings.GENERATION_MODEL, settings.GENERATION_API_KEY)
        self._fallback = (
            settings.GENERATION_FALLBACK,
            settings.GENERATION_FALLBACK_API_KEY or settings.GENERATION_API_KEY,
        )
        self._api_base = settings.GENERATION_API_BASE
        self._timeout = settings.GENERATION_TIMEOUT
        self._max_attempts = settings.GENERATION_MAX_ATTEMPTS

    async def _call_model(
        self,
        model: str,
        prompt: str,
        api_key: Optional[str],
        max_tokens: int,
        temperature: float,
    ):
        """Make a single LLM API call, retrying transient failures."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=RETRY_WAIT_MAX),
            retry=retry_if_exception(is_retryable_exception),
            before_sleep=before_sleep_log(logger, "WARNING"),
            reraise=True,
        ):
            with attempt:
                return await litellm.acompletion(
                    model=model,
                    messages=[{"role": "user", "content": prompt}],
                    timeout=self._timeout,
                    api_key=api_key,
                    api_base=self._api_base,
                    max_tokens=max_tokens,
                    temperature=temperature,
                    num_retries=0,
                )

    async def generate(
        self, prompt: str, *, max_tokens: int = 100, temperature: float = 0.7
    ) -> str:
        """Generate a completion for ``prompt``.

        Tries the primary model, then the fallback model once if one is
        configured. Returns ``response.choices[0].message.content``.

        Raises:
            Exception: The last provider error if every model fails, or an
                AttributeError/IndexError for an unexpected response shape.
        """
        primary, primary_key = self._primary
        fallback, fallback_key = self._fallback
        logger.debug("LLMRouter.generate entry: primary={} fallback={}", primary, fallback)

        try:
            response = await self._call_model(
                primary, prompt, primary_key, max_tokens, temperature
            )
            used_model = primary
        except Exception as e:
            if not fallback:
                logger.warning("LLM model {} failed and no fallback is configured: {}", primary, e)
                raise
            logger.warning("Primary LLM model {} failed: {}", primary, e)
            logger.info("Retrying LLM call with fallback model {}", fallback)
            try:
                response = await self._call_model(
                    fallback, prompt, fallback_key, max_tokens, temperature
                )
                used_model = fallback
            except Exception as e_fallback:
                logger.exception(
                    "Fallback LLM model {} also failed: {}", fallback, e_fallback
                )
                raise

        content = response.choices[0].message.content
        logger.debug("LLMRouter.generate exit: model={}", used_model)
        return content
