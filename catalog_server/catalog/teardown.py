"""Irreversible removal of the catalog."""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from catalog_server.catalog.definitions import CATALOG_SCHEMA, VIEWS_SCHEMA
from catalog_server.catalog.tx import store_errors, transaction
from catalog_server.logging_config import get_logger

logger = get_logger(name=__name__)


class CatalogTeardown:
    """Drops both catalog schemas. Callers gate this behind an explicit admin action."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    async def clean(self) -> None:
        async with transaction(self.engine, "clean") as conn:
            with store_errors("clean"):
                await conn.execute(text(f"DROP SCHEMA IF EXISTS {VIEWS_SCHEMA} CASCADE"))
                await conn.execute(text(f"DROP SCHEMA {CATALOG_SCHEMA} CASCADE"))
        logger.warning("Dropped catalog schemas {} and {}", VIEWS_SCHEMA, CATALOG_SCHEMA)
