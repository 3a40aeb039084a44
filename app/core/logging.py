"""Logging configuration."""
import logging
import sys

from app.core.config import settings

# Library loggers that are too chatty at INFO for webhook traffic
QUIET_LOGGERS = ("httpx", "openai", "twilio", "sqlalchemy.engine", "uvicorn.access")


def setup_logging() -> None:
    """Configure application logging from LOG_LEVEL."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logging.getLogger(__name__).info(
        f"[STARTUP] Logging configured - Level: {logging.getLevelName(level)}"
    )
