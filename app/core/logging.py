"""Logging configuration."""
import logging
import sys
from typing import Optional

from app.core.config import settings

# Chatty libraries that only matter when something is wrong
QUIET_LOGGERS = (
    "httpx",
    "httpcore",
    "openai",
    "sqlalchemy.engine",
    "aiosqlite",
    "multipart",
)


def setup_logging(level: Optional[str] = None) -> None:
    """Configure application logging once, at startup."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        f"[LOGGING] Configured - Level: {(level or settings.log_level).upper()}, "
        f"Provider: {settings.telephony_provider}"
    )
