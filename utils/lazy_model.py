"""Lazy, load-once lifecycle shared by the embedding and generation handles.

A handle moves ``UNINITIALIZED -> INITIALIZING -> READY``. A failed load moves
it to ``FAILED``; the next request makes exactly one new attempt. Callers that
arrive while a load is in flight await that same load.
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Any, Callable, Optional, Type

from loguru import logger

from services.exceptions import RAGError


def retrieve_task_failure(task: asyncio.Task) -> None:
    """Done-callback marking a shared task's exception as retrieved.

    Shared tasks are awaited through ``asyncio.shield``; when every waiter has
    been cancelled nobody else reads the failure.
    """
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug("Shared task {} finished with {!r}", task.get_name(), error)


class ModelState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


class LazyModel:
    """Base class for process-wide model handles.

    Subclasses set ``name`` and ``failure_type`` and may override
    ``_on_loaded`` to validate the freshly loaded backend.

    Args:
        loader: Synchronous callable returning the backend. It runs in a worker
            thread so slow model loads do not block the event loop.
    """

    name: str = "model"
    failure_type: Type[RAGError] = RAGError

    def __init__(self, loader: Callable[[], Any]):
        self._loader = loader
        self._backend: Any = None
        self._state = ModelState.UNINITIALIZED
        self._load_task: Optional[asyncio.Task] = None
        self._load_attempts = 0
        self.last_error: Optional[BaseException] = None

    @property
    def state(self) -> ModelState:
        return self._state

    @property
    def load_attempts(self) -> int:
        return self._load_attempts

    def is_ready(self) -> bool:
        return self._state is ModelState.READY

    def is_initializing(self) -> bool:
        return self._state is ModelState.INITIALIZING

    async def initialize(self) -> Any:
        """Load the backend once and return it.

        Raises:
            failure_type: If the load fails. The handle is left in ``FAILED``.
        """
        if self._state is ModelState.READY:
            return self._backend

        if self._load_task is None:
            self._state = ModelState.INITIALIZING
            self._load_task = asyncio.create_task(self._load())
            self._load_task.add_done_callback(retrieve_task_failure)

        return await asyncio.shield(self._load_task)

    async def _load(self) -> Any:
        self._load_attempts += 1
        start = time.perf_counter()
        logger.info("Loading {} (attempt {})", self.name, self._load_attempts)

        try:
            backend = await asyncio.to_thread(self._loader)
            self._on_loaded(backend)
            self._backend = backend
            self._state = ModelState.READY
            self.last_error = None
        except Exception as e:
            self._state = ModelState.FAILED
            self.last_error = e
            logger.error("Failed to load {}: {}", self.name, e)
            if isinstance(e, self.failure_type):
                raise
            raise self.failure_type(f"Failed to load {self.name}: {e}") from e
        finally:
            self._load_task = None

        logger.info("{} ready in {:.2f}s", self.name, time.perf_counter() - start)
        return backend

    def _on_loaded(self, backend: Any) -> None:
        """Hook for validating a loaded backend. Raise to fail the load."""
