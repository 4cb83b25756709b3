"""
Process-wide logging setup for the API and the Celery worker.
"""

import logging
import sys
from typing import Optional

from microinvest.core.config import settings

# Libraries that are chatty at INFO; kept at WARNING unless DEBUG is set.
QUIET_LOGGERS = ("sqlalchemy.engine", "yfinance", "urllib3", "httpx", "peewee")


def setup_logging(level: Optional[str] = None) -> None:
    """Log to stdout at LOG_LEVEL (or DEBUG when settings.DEBUG is on)."""
    name = level or ("DEBUG" if settings.DEBUG else settings.LOG_LEVEL)
    logging.basicConfig(
        level=getattr(logging, name.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    if not settings.DEBUG:
        for noisy in QUIET_LOGGERS:
            logging.getLogger(noisy).setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.INFO)
    logging.getLogger("celery").setLevel(logging.INFO)
