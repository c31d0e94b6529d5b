"""Process-wide logging setup for the web app and CLI entrypoints."""

import logging

from audit_intake.core.config import Settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def configure_logging(cfg: Settings) -> None:
    """Console logging at LOG_LEVEL, plus LOG_FILE when configured."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if cfg.LOG_FILE:
        handlers.append(logging.FileHandler(cfg.LOG_FILE, encoding="utf-8"))
    logging.basicConfig(
        level=cfg.LOG_LEVEL,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
    )
