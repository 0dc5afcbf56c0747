"""Loguru setup shared by the server and the CLI entry point."""

import inspect
import logging
import sys

from loguru import logger

_LOG_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"
)

_configured = False


class InterceptHandler(logging.Handler):
    """Route stdlib logging records (uvicorn, mcp, anyio) into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find the caller that originated the record so loguru reports it
        frame, depth = inspect.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def configure_logging(log_file: str = "server.log", level: str = "INFO") -> None:
    """Configure loguru sinks and intercept stdlib logging.

    Safe to call more than once; only the first call installs sinks.
    """
    global _configured
    if _configured:
        return

    logger.remove()
    logger.add(sys.stderr, level=level, format=_LOG_FORMAT)
    if log_file:
        logger.add(
            log_file,
            level="DEBUG",
            format=_LOG_FORMAT,
            encoding="utf-8",
            rotation="10 MB",
            retention=3,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.propagate = False
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    _configured = True
