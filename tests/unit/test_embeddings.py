"""Unit tests for the EmbeddingModel handle and its load-once lifecycle."""

import asyncio
import gc
import threading
import time

import numpy as np
import pytest

from rag.embeddings import EmbeddingModel
from services.exceptions import EmbeddingFailure
from utils.lazy_model import ModelState


class CountingLoader:
    """Loader that counts invocations and can be told to fail."""

    def __init__(self, backend, delay: float = 0.0, failures: int = 0):
        self.backend = backend
        self.delay = delay
        self.failures = failures
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            self.calls += 1
            should_fail = self.calls <= self.failures
        if self.delay:
            time.sleep(self.delay)
        if should_fail:
            raise OSError("Network error: failed to download model")
        return self.backend


class ListBackend:
    def __init__(self, output):
        self.output = output

    def get_text_embedding_batch(self, texts):
        return self.output


@pytest.mark.unit
@pytest.mark.asyncio
async def test_embed_triggers_initialization(stub_embedding_backend_cls):
    backend = stub_embedding_backend_cls()
    model = EmbeddingModel(loader=lambda: backend)
    assert model.state is ModelState.UNINITIALIZED
    assert not model.is_ready()

    vector = await model.embed("revenue growth")

    assert model.is_ready()
    assert isinstance(vector, np.ndarray)
    assert vector.dtype == np.float32
    assert vector.shape == (backend.embed_dim,)
    assert vector[0] == 1.0 and vector[1] == 1.0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_concurrent_initialize_loads_once(stub_embedding_backend_cls):
    loader = CountingLoader(stub_embedding_backend_cls(), delay=0.05)
    model = EmbeddingModel(loader=loader)

    first = asyncio.create_task(model.initialize())
    await asyncio.sleep(0)
    assert model.is_initializing()

    results = await asyncio.gather(first, *(model.initialize() for _ in range(4)))

    assert loader.calls == 1
    assert all(r is loader.backend for r in results)
    assert model.state is ModelState.READY


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failed_load_retries_once_on_next_request(stub_embedding_backend_cls):
    loader = CountingLoader(stub_embedding_backend_cls(), failures=1)
    model = EmbeddingModel(loader=loader)

    with pytest.raises(EmbeddingFailure):
        await model.embed("revenue")
    assert model.state is ModelState.FAILED
    assert loader.calls == 1
    assert isinstance(model.last_error, OSError)

    vector = await model.embed("revenue")

    assert loader.calls == 2
    assert model.is_ready()
    assert vector.shape == (8,)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_concurrent_waiters_share_one_failed_attempt(stub_embedding_backend_cls):
    loader = CountingLoader(stub_embedding_backend_cls(), delay=0.05, failures=5)
    model = EmbeddingModel(loader=loader)

    results = await asyncio.gather(
        *(model.initialize() for _ in range(3)), return_exceptions=True
    )

    assert loader.calls == 1
    assert all(isinstance(r, EmbeddingFailure) for r in results)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_batch_of_one_output_is_flattened():
    model = EmbeddingModel(loader=lambda: ListBackend(np.array([[0.1, 0.2, 0.3]])))

    vector = await model.embed("anything")

    assert vector.shape == (3,)
    assert model.dimension == 3


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize(
    "output",
    [
        [[1.0, 2.0], [3.0, 4.0]],
        [],
        [["a", "b"]],
        [[float("nan"), 1.0]],
    ],
)
async def test_malformed_output_raises_embedding_failure(output):
    model = EmbeddingModel(loader=lambda: ListBackend(output))

    with pytest.raises(EmbeddingFailure):
        await model.embed("text")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_dimension_change_raises_embedding_failure():
    backend = ListBackend([[1.0, 0.0]])
    model = EmbeddingModel(loader=lambda: backend)
    await model.embed("first")

    backend.output = [[1.0, 0.0, 0.0]]

    with pytest.raises(EmbeddingFailure):
        await model.embed("second")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_declared_dimension_is_enforced():
    backend = ListBackend([[1.0, 0.0]])
    backend.embed_dim = 384
    model = EmbeddingModel(loader=lambda: backend)

    with pytest.raises(EmbeddingFailure) as exc:
        await model.embed("text")
    assert "dimension mismatch" in str(exc.value)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_inference_error_is_wrapped():
    class BrokenBackend:
        def get_text_embedding_batch(self, texts):
            raise RuntimeError("ONNX session crashed")

    model = EmbeddingModel(loader=BrokenBackend)

    with pytest.raises(EmbeddingFailure) as exc:
        await model.embed("text")
    assert exc.value.stage == "embedding"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_backend_without_embedding_method_fails_load():
    model = EmbeddingModel(loader=object)

    with pytest.raises(EmbeddingFailure):
        await model.initialize()
    assert model.state is ModelState.FAILED


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failed_load_after_cancelled_caller_is_retrieved(caplog):
    loop = asyncio.get_running_loop()
    reported = []
    loop.set_exception_handler(lambda _loop, context: reported.append(context))
    release = threading.Event()

    def loader():
        release.wait(timeout=5)
        raise OSError("disk unavailable")

    model = EmbeddingModel(loader=loader)
    try:
        caller = asyncio.create_task(model.initialize())
        await asyncio.sleep(0.01)
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        release.set()
        for _ in range(200):
            if model.state is ModelState.FAILED:
                break
            await asyncio.sleep(0.01)
        await asyncio.sleep(0)
        gc.collect()
    finally:
        release.set()
        loop.set_exception_handler(None)

    assert model.state is ModelState.FAILED
    assert reported == []
    assert "finished with" in caplog.text
