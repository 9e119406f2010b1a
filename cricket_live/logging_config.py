# cricket_live/logging_config.py
from __future__ import annotations

import logging


def setup_logging(level_name: str = "INFO") -> None:
    """Configure application-wide logging.

    The format includes timestamp, log level, logger name, and message.
    """
    level = getattr(logging, level_name.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    # Keep uvicorn output at the same level as the app
    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(logger_name).setLevel(level)
