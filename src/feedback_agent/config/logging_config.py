"""
Centralized logging configuration for the feedback agent.

Everything ends up in Loguru: provider adapters and the JSON extractor log
through stdlib ``logging`` and are forwarded by :class:`InterceptHandler`.
"""

import logging
import sys
from pathlib import Path
from typing import Optional
from loguru import logger

# stdlib loggers forwarded to Loguru
FORWARDED_LOGGERS = ("feedback_agent", "uvicorn", "uvicorn.error")

# Third-party loggers that are too chatty below WARNING
QUIET_LOGGERS = ("httpx", "httpcore", "chromadb", "google_genai", "openai")


class InterceptHandler(logging.Handler):
    """Re-emit stdlib log records through Loguru, keeping the caller's location."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_structured_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    serialize: bool = True
) -> None:
    """
    Configure Loguru sinks and route stdlib logging into them.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to a rotating JSON log file
        serialize: Emit JSON records on stdout (False for human-readable CLI output)
    """
    logger.remove()

    # serialize=True keeps correlation_id and other bound fields in record.extra
    logger.add(
        sys.stdout if serialize else sys.stderr,
        serialize=serialize,
        format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level} | {name} | {message}",
        level=level,
        enqueue=True,
        backtrace=True,
        diagnose=False
    )

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        logger.add(
            log_path,
            serialize=True,
            level="DEBUG",
            rotation="10 MB",
            retention="30 days",
            compression="zip"
        )

    handler = InterceptHandler()
    for name in FORWARDED_LOGGERS:
        stdlib_logger = logging.getLogger(name)
        stdlib_logger.handlers = [handler]
        stdlib_logger.propagate = False
        stdlib_logger.setLevel(level.upper())

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
