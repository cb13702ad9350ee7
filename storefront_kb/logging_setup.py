from __future__ import annotations

"""Loguru sink configuration for the CLI and the worker."""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from .config import LOG_DIR, LOG_LEVEL, LOG_RETENTION, LOG_ROTATION

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


def configure_logging(level: str = LOG_LEVEL, log_dir: Optional[Path] = LOG_DIR) -> None:
    """
    Replace loguru's default sink with a stderr sink at ``level`` and, when
    ``log_dir`` is given, a rotating file sink under it.
    """
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format=LOG_FORMAT)
    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_dir / "storefront_kb_{time:YYYY-MM-DD}.log",
            level=level.upper(),
            rotation=LOG_ROTATION,
            retention=LOG_RETENTION,
            encoding="utf-8",
            enqueue=True,
        )
    logger.debug("Logging configured at level {}", level.upper())
