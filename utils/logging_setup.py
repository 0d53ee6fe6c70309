from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Optional

from loguru import logger


class InterceptHandler(logging.Handler):
    """Redirect stdlib logging records (litellm, uvicorn, onnxruntime) to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find the first frame outside of logging to get correct caller info
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def setup_logging(
    app_name: str = "docchat",
    log_dir: Optional[str] = None,
    level: Optional[str] = None,
    development: Optional[bool] = None,
) -> None:
    """Configure Loguru and intercept stdlib logging.

    Development mode logs readable lines to stderr only. Otherwise a
    JSON-serialized, size-rotated file sink is added under ``log_dir``.
    """
    if level is None:
        level = os.environ.get("LOG_LEVEL", "INFO").upper()

    if development is None:
        development = os.environ.get("ENV", "production").lower() == "development"

    logger.remove()

    logger.add(
        sys.stderr,
        level=level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
        enqueue=True,
        catch=True,
    )

    if not development:
        logs_path = Path(log_dir or "logs")
        logs_path.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(logs_path / f"{app_name}_{{time}}.log"),
            rotation="10 MB",
            retention="14 days",
            level=level,
            format="{message}",
            serialize=True,
            enqueue=True,
            catch=True,
        )

    intercept_handler = InterceptHandler()
    logging.root.handlers = [intercept_handler]
    logging.basicConfig(handlers=[intercept_handler], level=level, force=True)


__all__ = ["setup_logging", "InterceptHandler"]
