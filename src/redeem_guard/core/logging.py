"""Process-wide logging setup."""

from __future__ import annotations

import logging

from redeem_guard.core.settings import settings

_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure the root logger once; later calls only adjust the level."""
    resolved = (level or settings.log_level).upper()
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=resolved, format=_LOG_FORMAT)
    root.setLevel(resolved)
    # httpx logs every request at INFO; alert delivery already logs outcomes.
    logging.getLogger("httpx").setLevel(logging.WARNING)
