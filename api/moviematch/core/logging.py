from __future__ import annotations

import logging

from moviematch.core.config import settings

LOG_FORMAT = "%(asctime)s %(name)s [%(levelname)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Apply the configured log level and format to the root logger."""
    logging.basicConfig(level=(level or settings.log_level).upper(), format=LOG_FORMAT, force=True)
