from __future__ import annotations

import logging
import os

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | int | None = None) -> None:
    """Root handler for the CLI and the ASGI app. EKO_LOG_LEVEL overrides the default."""
    lvl = level or os.environ.get("EKO_LOG_LEVEL") or "INFO"
    if isinstance(lvl, str):
        lvl = logging.getLevelName(lvl.upper())
        if not isinstance(lvl, int):
            lvl = logging.INFO
    logging.basicConfig(level=lvl, format=_FORMAT)
    logging.getLogger("httpx").setLevel(logging.WARNING)
