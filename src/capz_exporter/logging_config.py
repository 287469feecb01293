from __future__ import annotations

import logging
import os
from typing import Optional


def _get_log_level_from_env(env_var: str = "CAPZ_EXPORTER_LOG_LEVEL") -> int:
    """
    Resolve the desired log level from an environment variable.

    Defaults to INFO when the variable is unset or invalid.
    """
    value = os.getenv(env_var, "INFO").upper()
    level = getattr(logging, value, logging.INFO)
    return level if isinstance(level, int) else logging.INFO


def configure_logging(level: Optional[int] = None) -> None:
    """
    Set up root logging for the exporter process.

    When uvicorn or a test runner has already installed root handlers they
    are kept and only the level is applied; otherwise a stderr handler with
    the exporter line format is added.
    """
    if level is None:
        level = _get_log_level_from_env()

    root_logger = logging.getLogger()

    if root_logger.handlers:
        root_logger.setLevel(level)
        return

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    # httpx logs every request at INFO; artifact crawls make that very chatty.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


__all__ = ["configure_logging"]
