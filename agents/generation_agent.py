"""Generation model handle for answering questions from retrieved context.

Takes the context window (retrieved chunk texts joined by blank lines) and the
user's question, builds a completion prompt and returns the answer text with
any echoed prompt stripped.

Usage:
    from agents.generation_agent import GenerationModel

    model = GenerationModel(loader=make_generation_loader(settings))
    answer = await model.generate(context, "What are the key findings?")

Architecture:
    - Backend is loaded once per process through the shared lazy lifecycle
    - Only the text after the last "Answer:" delimiter is returned
    - Blank output is a failure, never an answer
"""

import asyncio
from typing import Any, Callable, Optional

from loguru import logger

from services.exceptions import GenerationFailure
from utils.lazy_model import LazyModel

ANSWER_DELIMITER = "Answer:"

PROMPT_TEMPLATE = "Context: {context}\n\nQuestion: {query}\n\n" + ANSWER_DELIMITER


def build_prompt(context: str, query: str) -> str:
    return PROMPT_TEMPLATE.format(context=context, query=query)


def extract_answer(raw: str) -> str:
    """Return the text after the last answer delimiter, or ``raw`` unchanged."""
    _, found, answer = raw.rpartition(ANSWER_DELIMITER)
    return answer if found else raw


class GenerationModel(LazyModel):
    """Lazily-initialised text generation model.

    The backend must expose an async ``generate(prompt, *, max_tokens,
    temperature) -> str`` (see :class:`utils.llm_router.LLMRouter`).

    Attributes:
        timeout: Seconds allowed for the whole backend call, including any
            retries and model fallback inside the backend (None disables it).
        max_new_tokens: Completion length limit passed to the backend.
        temperature: Sampling temperature passed to the backend.
    """

    name = "generation model"
    failure_type = GenerationFailure

    def __init__(
        self,
        loader: Callable[[], Any],
        timeout: Optional[float] = 30.0,
        max_new_tokens: int = 100,
        temperature: float = 0.7,
    ):
        super().__init__(loader)
        self.timeout = timeout
        self.max_new_tokens = max_new_tokens
        self.temperature = temperature

    def _on_loaded(self, backend: Any) -> None:
        if not hasattr(backend, "generate"):
            raise GenerationFailure(f"Invalid generation backend type: {type(backend)}")

    async def generate(self, context: str, query: str) -> str:
        """Generate an answer to ``query`` from ``context``.

        Returns:
            Non-empty answer text.

        Raises:
            GenerationFailure: On load failure, backend error, timeout, a
                non-string response or a blank answer.
        """
        backend = await self.initialize()
        prompt = build_prompt(context, query)
        logger.debug("Generation prompt built: {} chars", len(prompt))

        try:
            raw = await asyncio.wait_for(
                backend.generate(
                    prompt,
                    max_tokens=self.max_new_tokens,
                    temperature=self.temperature,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            logger.warning("Generation timed out after {}s", self.timeout)
            raise GenerationFailure(f"Generation timed out after {self.timeout}s") from e
        except Exception as e:
            logger.exception("Generation failed")
            raise GenerationFailure(f"Generation failed: {e}") from e

        if not isinstance(raw, str):
            raise GenerationFailure(
                f"Unexpected generation output type: {type(raw).__name__}"
            )

        answer = extract_answer(raw).strip()
        if not answer:
            raise GenerationFailure("Generation returned a blank answer")

        logger.info("Generation completed: response_length={}", len(answer))
        return answer
