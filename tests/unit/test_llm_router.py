import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from config.config import Settings
from utils.llm_router import LLMRouter, is_retryable_exception


def completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


@pytest.fixture
def router_settings():
    return Settings(
        _env_file=None,
        GENERATION_MODEL="primary_model",
        GENERATION_FALLBACK="fallback_model",
        GENERATION_API_KEY="fake_primary_key",
        GENERATION_FALLBACK_API_KEY="fake_fallback_key",
        GENERATION_TIMEOUT=30,
        GENERATION_MAX_ATTEMPTS=2,
    )


@pytest.mark.unit
@pytest.mark.asyncio
async def test_generate_happy_path(router_settings):
    """generate should call litellm.acompletion with the primary model and return content"""

    with patch("litellm.acompletion", new_callable=AsyncMock) as mock_acompletion:
        mock_acompletion.return_value = completion("ok")

        router = LLMRouter(router_settings)
        result = await router.generate("test prompt", max_tokens=50, temperature=0.2)

        assert result == "ok"
        assert mock_acompletion.call_count == 1
        called_kwargs = mock_acompletion.call_args.kwargs
        assert called_kwargs.get("model") == "primary_model"
        assert called_kwargs.get("api_key") == "fake_primary_key"
        assert called_kwargs.get("timeout") == 30
        assert called_kwargs.get("max_tokens") == 50
        assert called_kwargs.get("temperature") == 0.2
        assert called_kwargs.get("messages") == [{"role": "user", "content": "test prompt"}]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_generate_fallback_path(router_settings):
    """If primary fails, router should retry with fallback and return content"""

    with patch("litellm.acompletion", new_callable=AsyncMock) as mock_acompletion:
        mock_acompletion.side_effect = [Exception("primary failed"), completion("fallback-ok")]

        router = LLMRouter(router_settings)
        result = await router.generate("test prompt")

        assert result == "fallback-ok"
        assert mock_acompletion.call_count == 2
        assert mock_acompletion.call_args_list[0].kwargs.get("model") == "primary_model"
        assert mock_acompletion.call_args_list[1].kwargs.get("model") == "fallback_model"
        assert mock_acompletion.call_args_list[1].kwargs.get("api_key") == "fake_fallback_key"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_generate_both_fail(router_settings):
    """If both primary and fallback fail, router should raise the exception"""

    with patch("litellm.acompletion", new_callable=AsyncMock) as mock_acompletion:
        mock_acompletion.side_effect = Exception("both fail")

        router = LLMRouter(router_settings)

        with pytest.raises(Exception, match="both fail"):
            await router.generate("test prompt")

        assert mock_acompletion.call_count == 2


@pytest.mark.unit
@pytest.mark.asyncio
async def test_no_fallback_configured_raises(router_settings):
    router_settings.GENERATION_FALLBACK = None

    with patch("litellm.acompletion", new_callable=AsyncMock) as mock_acompletion:
        mock_acompletion.side_effect = ValueError("bad request")

        router = LLMRouter(router_settings)

        with pytest.raises(ValueError):
            await router.generate("test prompt")

        assert mock_acompletion.call_count == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_transient_error_is_retried_on_same_model(router_settings):
    with patch("litellm.acompletion", new_callable=AsyncMock) as mock_acompletion:
        mock_acompletion.side_effect = [httpx.ConnectError("connection refused"), completion("ok")]

        router = LLMRouter(router_settings)
        result = await router.generate("test prompt")

        assert result == "ok"
        assert [c.kwargs["model"] for c in mock_acompletion.call_args_list] == [
            "primary_model",
            "primary_model",
        ]


@pytest.mark.unit
def test_missing_model_rejected():
    with pytest.raises(ValueError):
        LLMRouter(Settings(_env_file=None, GENERATION_MODEL=None))


@pytest.mark.unit
@pytest.mark.parametrize(
    "exc, expected",
    [
        (asyncio.TimeoutError(), True),
        (httpx.ReadTimeout("slow"), True),
        (httpx.ConnectError("refused"), True),
        (ValueError("bad"), False),
        (RuntimeError("boom"), False),
    ],
)
def test_is_retryable_exception(exc, expected):
    assert is_retryable_exception(exc) is expected
