"""
Logging setup.

Plain stdlib logging, one module-level logger per file. Messages carry
bracket tags ("[SHIPROCKET]", "[SHIPROCKET][<correlation id>]") so a grep
on the tag pulls out a whole carrier conversation.
"""
import logging

from app.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Chatty libraries that log every request line at INFO
NOISY_LOGGERS = ("httpx", "httpcore")


def configure_logging(level: str = None) -> None:
    level_name = (level or settings.LOG_LEVEL or "INFO").upper()
    numeric_level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(level=numeric_level, format=LOG_FORMAT)
    logging.getLogger().setLevel(numeric_level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
