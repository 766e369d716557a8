"""Logging configuration.

Log records carry the id of the turn they were written from, so the
interleaved output of concurrent turns can be told apart.
"""

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

from pydantic import BaseModel

NOISY_LOGGERS = ("anthropic", "httpx", "httpcore", "mcp", "uvicorn.access")

# Inherited by tasks the turn starts (tool calls, merged streams)
current_turn: ContextVar[str | None] = ContextVar("current_turn", default=None)


class LogConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - [%(turn)s] %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"


class TurnFilter(logging.Filter):
    """Adds ``turn`` to every record: the current turn's message id, or ``-``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.turn = current_turn.get() or "-"
        return True


@contextmanager
def turn_logging(message_id: str) -> Iterator[None]:
    """Tag log records written inside the block with a turn's message id."""
    token = current_turn.set(message_id)
    try:
        yield
    finally:
        current_turn.reset(token)


def setup_logging(config: LogConfig | None = None) -> None:
    """Configure the root logger for the service process."""
    if config is None:
        config = LogConfig(level=os.getenv("LOG_LEVEL", "INFO"))

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(config.format, datefmt=config.date_format))
    handler.addFilter(TurnFilter())
    logging.basicConfig(level=config.level.upper(), handlers=[handler], force=True)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str, level: str | None = None) -> logging.Logger:
    """Get a module logger at ``level`` or LOG_LEVEL."""
    logger = logging.getLogger(name)
    logger.setLevel((level or os.getenv("LOG_LEVEL", "INFO")).upper())
    return logger
