# gguf_codec/logging.py
"""
Logging setup using Loguru.

The codec logs under the ``gguf_codec`` name and is disabled on import so it
stays quiet inside host applications; ``configure_logging`` turns it on.
"""
from __future__ import annotations

import sys
from typing import Any

from loguru import logger


def configure_logging(*, debug: bool = False, sink: Any = sys.stderr) -> int:
    """Route codec logs to a single human-readable sink and enable them.

    Args:
        debug: Enable verbose debug logging (parse/serialize/build timings).
        sink: Any loguru sink; stderr by default.

    Returns:
        The loguru handler id, for ``logger.remove``.
    """
    logger.remove()
    level = "DEBUG" if debug else "INFO"
    fmt = (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> "
        "| <level>{level: <8}</level> "
        "| <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> "
        "- <level>{message}</level>"
    )
    handler_id = logger.add(
        sink, level=level, format=fmt, enqueue=True, backtrace=debug, diagnose=debug
    )
    logger.enable("gguf_codec")
    return handler_id
