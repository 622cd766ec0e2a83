"""Async engine for the PostgreSQL database holding the catalog.

One process-wide ``AsyncEngine`` (asyncpg driver) is shared by the HTTP
server and the CLI. Catalog operations never use ORM sessions; each one
opens its own ``engine.begin()`` transaction.
"""

from typing import Any, Dict, Optional

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from catalog_server.logging_config import get_logger

logger = get_logger(name=__name__)

APPLICATION_NAME = "graphql-catalog"

_engine: Optional[AsyncEngine] = None


def _server_settings(statement_timeout_ms: Optional[int]) -> Dict[str, str]:
    settings = {"application_name": APPLICATION_NAME}
    if statement_timeout_ms is not None:
        settings["statement_timeout"] = str(statement_timeout_ms)
    return settings


def init_engine(
    database_url: str,
    pool_size: int = 5,
    max_overflow: int = 10,
    statement_timeout_ms: Optional[int] = None,
) -> AsyncEngine:
    """Create the process-wide catalog engine and return it."""
    global _engine
    connect_args: Dict[str, Any] = {"server_settings": _server_settings(statement_timeout_ms)}
    _engine = create_async_engine(
        database_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        connect_args=connect_args,
    )
    logger.info(
        "Catalog engine created for {} (pool {}+{})",
        make_url(database_url).render_as_string(hide_password=True),
        pool_size,
        max_overflow,
    )
    return _engine


async def dispose_engine() -> None:
    """Close every pooled connection and forget the engine."""
    global _engine
    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    logger.info("Catalog engine disposed")
