"""
Logging configuration.

Modules log through `logging.getLogger(__name__)`; `configure_logging` attaches
one stdout handler to the `sitemanager` logger so all of them share it.
"""
import logging
import sys
from sitemanager.config import get_settings

settings = get_settings()

ROOT_LOGGER = "sitemanager"

# Third-party loggers that are noisy at INFO
QUIET_LOGGERS = ("multipart", "passlib")


def configure_logging() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER)

    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(settings.LOG_FORMAT))
        root.addHandler(handler)
        root.propagate = False

    level = logging.DEBUG if settings.DEBUG else logging.getLevelName(settings.LOG_LEVEL.upper())
    root.setLevel(level if isinstance(level, int) else logging.INFO)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return root


def get_logger(name: str) -> logging.Logger:
    """Logger under the application root, configuring it on first use"""
    configure_logging()
    if not name.startswith(ROOT_LOGGER):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)
