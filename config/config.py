"""
Configuration management for docchat.

Loads settings from environment variables (and an optional .env file) and
exposes them through a cached ``Settings`` instance.
"""

from functools import lru_cache
from typing import Optional

from loguru import logger
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Providers that run locally and need no API key
_LOCAL_PROVIDERS = ("ollama", "ollama_chat", "huggingface", "vllm")


class Settings(BaseSettings):
    """
    Loads and validates application settings from the environment.
    """

    # ========================================================================
    # Application
    # ========================================================================
    LOG_LEVEL: str = "INFO"
    ENV: str = "production"
    LOG_DIR: str = "logs"

    # ========================================================================
    # RAG Configuration
    # ========================================================================
    CHUNK_SIZE: int = Field(300, gt=0)  # words per chunk
    RETRIEVAL_TOP_K: int = Field(3, gt=0)
    MAX_CACHED_INDEXES: int = Field(8, gt=0)
    PROJECT_DOC_PREVIEW_CHARS: int = Field(1000, gt=0)

    # ========================================================================
    # Embedding Model (ONNX Runtime)
    # ========================================================================
    EMBEDDING_MODEL: str = "mixedbread-ai/mxbai-embed-xsmall-v1"
    ONNX_CACHE_DIR: str = "./onnx_model_cache"
    EMBEDDING_THREADS: int = Field(0, ge=0)  # 0 = all cores

    # ========================================================================
    # Generation Model (LiteLLM routing)
    # ========================================================================
    GENERATION_MODEL: Optional[str] = "ollama/llama3.2:1b"
    GENERATION_FALLBACK: Optional[str] = None
    GENERATION_API_KEY: Optional[str] = None
    GENERATION_FALLBACK_API_KEY: Optional[str] = None
    GENERATION_API_BASE: Optional[str] = None
    GENERATION_TIMEOUT: int = Field(30, gt=0)  # seconds
    GENERATION_MAX_NEW_TOKENS: int = Field(100, gt=0)
    GENERATION_TEMPERATURE: float = Field(0.7, ge=0.0)
    GENERATION_MAX_ATTEMPTS: int = Field(2, gt=0)

    PRELOAD_MODELS: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def validate_keys(self) -> None:
        """Log warnings for missing generation settings. Never raises."""
        if not self.GENERATION_MODEL:
            logger.warning(
                "GENERATION_MODEL is not set. Answers will use the fallback responder."
            )
            return

        provider = self.GENERATION_MODEL.split("/", 1)[0]
        if provider not in _LOCAL_PROVIDERS and not self.GENERATION_API_KEY:
            logger.warning(
                "GENERATION_API_KEY is not set for hosted model {}", self.GENERATION_MODEL
            )

        if self.GENERATION_FALLBACK and not (
            self.GENERATION_FALLBACK_API_KEY or self.GENERATION_API_KEY
        ):
            fallback_provider = self.GENERATION_FALLBACK.split("/", 1)[0]
            if fallback_provider not in _LOCAL_PROVIDERS:
                logger.warning(
                    "GENERATION_FALLBACK_API_KEY is not set for fallback model {}",
                    self.GENERATION_FALLBACK,
                )

        logger.info("  Embedding model: {}", self.EMBEDDING_MODEL)
        logger.info("  Generation model: {}", self.GENERATION_MODEL)
        logger.info("  Generation fallback: {}", self.GENERATION_FALLBACK)
        logger.info("  Generation timeout: {}s", self.GENERATION_TIMEOUT)


@lru_cache()
def get_settings() -> Settings:
    return Settings()
