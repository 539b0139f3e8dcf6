from __future__ import annotations

import logging
import sys

_FORMAT = "%(asctime)s | %(levelname)s | %(module)s | %(message)s"


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach a single stdout handler to the ``arbdesk`` logger tree."""
    logger = logging.getLogger("arbdesk")
    logger.setLevel(level.upper())

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(_FORMAT))
        logger.addHandler(handler)

    return logger
