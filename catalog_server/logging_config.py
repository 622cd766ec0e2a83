"""Loguru setup shared by the HTTP server and the catalog CLI.

Every record carries two extras: ``module`` (bound per module through
``get_logger``) and ``operation`` (the catalog operation whose transaction
is open, set by ``catalog_operation``). Records outside an operation show
``-``.
"""

import os
import sys
from contextlib import contextmanager
from typing import Iterator, Optional

from loguru import logger

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{extra[operation]}</magenta> | "
    "<cyan>{extra[module]}</cyan>:<cyan>{line}</cyan> | "
    "{message}"
)

_DEFAULT_EXTRA = {"module": "catalog_server", "operation": "-"}


def configure_logging(level: Optional[str] = None) -> None:
    """Replace loguru's default sink with the catalog's stderr sink."""
    logger.remove()
    logger.configure(extra=dict(_DEFAULT_EXTRA))
    logger.add(
        sys.stderr,
        level=(level or LOG_LEVEL).upper(),
        format=LOG_FORMAT,
        backtrace=False,
        diagnose=False,
    )


def get_logger(name: Optional[str] = None, **kwargs):
    if name:
        return logger.bind(module=name, **kwargs)
    return logger.bind(**kwargs)


@contextmanager
def catalog_operation(operation: str) -> Iterator[None]:
    """Tag every record logged inside the block with ``operation``."""
    with logger.contextualize(operation=operation):
        yield
