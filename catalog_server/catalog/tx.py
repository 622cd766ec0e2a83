"""Transaction scope and store error handling for catalog operations."""

from contextlib import asynccontextmanager, contextmanager
from typing import AsyncIterator, Iterator

import asyncpg
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from catalog_server.catalog.errors import CatalogError, StoreFailure
from catalog_server.logging_config import catalog_operation, get_logger

logger = get_logger(name=__name__)


@contextmanager
def store_errors(phase: str) -> Iterator[None]:
    """Re-raise store failures inside the block as ``StoreFailure`` tagged with ``phase``.

    Catalog errors raised inside the block pass through untouched.
    """
    try:
        yield
    except CatalogError:
        raise
    except (SQLAlchemyError, asyncpg.PostgresError) as exc:
        failure = StoreFailure.from_exception(exc, phase)
        logger.error("Catalog {} failed: {}", phase, failure.message)
        raise failure from exc


@asynccontextmanager
async def transaction(engine: AsyncEngine, operation: str) -> AsyncIterator[AsyncConnection]:
    """Open the single transaction a public catalog operation runs in.

    Commits when the block exits normally and rolls back on any exception.
    """
    with catalog_operation(operation):
        logger.debug("Opening transaction")
        with store_errors(operation):
            async with engine.begin() as conn:
                yield conn
        logger.debug("Committed transaction")


async def run_script(conn: AsyncConnection, script: str) -> None:
    """Execute a multi-statement SQL script on the connection's open transaction.

    Goes through the raw asyncpg connection, whose simple-query path accepts
    several statements at once. The SQLAlchemy adapter begins its transaction
    lazily, so at least one statement must already have run on ``conn``.
    """
    raw = await conn.get_raw_connection()
    await raw.driver_connection.execute(script)
