"""Idempotent creation of the catalog.

``initialize`` probes for the catalog and, when it is missing, creates the
schemas, the first/last aggregates, the seed DDL, the system metadata and
the version row in a single transaction. An existing catalog is left alone.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import insert, text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from catalog_server.catalog.definitions import (
    CATALOG_SCHEMA,
    FIRST_LAST_EXTENSION,
    FIRST_LAST_SQL,
    INITIALISE_SQL,
    REGISTRY_TABLES,
    VERSION_TABLE,
    VIEWS_SCHEMA,
    qualified,
)
from catalog_server.catalog.errors import Inconsistent
from catalog_server.catalog.executor import AdminQueryExecutor
from catalog_server.catalog.probe import VersionProbe
from catalog_server.catalog.tx import run_script, store_errors, transaction
from catalog_server.catalog.versions import DEFAULT_CATALOG_VERSION, INITIALISE_VERSION, CatalogVersion
from catalog_server.logging_config import get_logger
from catalog_server.metadata.identity import UserInfo
from catalog_server.metadata.queries import AdminQuery
from catalog_server.metadata.schema_cache import empty_schema_cache
from catalog_server.metadata.system import system_metadata_query
from catalog_server.metadata.tables import hdb_version

logger = get_logger(name=__name__)

ALREADY_INITIALISED_MSG = "initialise: the state is already initialised"
INITIALISED_MSG = "initialise: successfully initialised"

EXTENSION_AVAILABLE_SQL = """
SELECT EXISTS (
    SELECT 1
      FROM pg_catalog.pg_available_extensions
     WHERE name = :name
)
"""


async def ensure_first_last_aggregate(conn: AsyncConnection) -> None:
    """Make ``hdb_catalog.first`` / ``hdb_catalog.last`` aggregates available.

    Installs the ``first_last_agg`` extension when the server offers it and
    falls back to the bundled SQL definitions otherwise.
    """
    with store_errors("extension install"):
        result = await conn.execute(text(EXTENSION_AVAILABLE_SQL), {"name": FIRST_LAST_EXTENSION})
        if result.scalar():
            logger.info("Installing extension {} into {}", FIRST_LAST_EXTENSION, CATALOG_SCHEMA)
            await conn.execute(
                text(f"CREATE EXTENSION {FIRST_LAST_EXTENSION} SCHEMA {CATALOG_SCHEMA}")
            )
            return

        logger.info("Extension {} not available, loading bundled first/last aggregates", FIRST_LAST_EXTENSION)
        await run_script(conn, FIRST_LAST_SQL)


class CatalogBootstrapper:
    """Creates the catalog exactly once."""

    def __init__(
        self,
        engine: AsyncEngine,
        executor: AdminQueryExecutor,
        current_version: CatalogVersion = DEFAULT_CATALOG_VERSION,
        probe: Optional[VersionProbe] = None,
        identity: Optional[UserInfo] = None,
        system_query: Optional[AdminQuery] = None,
    ):
        self.engine = engine
        self.executor = executor
        self.current_version = current_version
        self.probe = probe or VersionProbe()
        self.identity = identity or executor.identity
        self.system_query = system_query or system_metadata_query()

    async def initialize(self, now: datetime) -> str:
        """Create the catalog unless it already exists.

        Args:
            now: Timestamp recorded as ``upgraded_on`` of the version row.

        Returns:
            A message telling whether the catalog was created or already present.

        Raises:
            Inconsistent: If the configured version is not the one the bundled
                DDL builds. Nothing is touched in that case.
        """
        if self.current_version != INITIALISE_VERSION:
            raise Inconsistent(
                f"initialise: cannot create a catalog at version {self.current_version.value}; "
                f"the bundled DDL builds version {INITIALISE_VERSION.value}"
            )

        async with transaction(self.engine, "initialise") as conn:
            if not await self.probe.schema_exists(conn, CATALOG_SCHEMA):
                logger.info("Catalog schema {} not found, creating catalog", CATALOG_SCHEMA)
                return await self._initialize_strict(conn, now, create_schemas=True)

            if not await self.probe.version_table_exists(conn):
                logger.info(
                    "Catalog schema {} exists without {}, initialising in place",
                    CATALOG_SCHEMA,
                    qualified(VERSION_TABLE),
                )
                return await self._initialize_strict(conn, now, create_schemas=False)

        logger.info("Catalog already initialised")
        return ALREADY_INITIALISED_MSG

    async def _initialize_strict(
        self,
        conn: AsyncConnection,
        now: datetime,
        create_schemas: bool,
    ) -> str:
        if create_schemas:
            with store_errors("schema creation"):
                await conn.execute(text(f"CREATE SCHEMA {CATALOG_SCHEMA}"))
                # generated views and triggers live here
                await conn.execute(text(f"CREATE SCHEMA {VIEWS_SCHEMA}"))

        await ensure_first_last_aggregate(conn)

        with store_errors("seed load"):
            await run_script(conn, INITIALISE_SQL)

        # the catalog being populated is not cached yet, so start from empty
        with store_errors("registration"):
            await self.executor.run(conn, self.system_query, empty_schema_cache(), self.identity)

        with store_errors("system metadata marking"):
            for table in REGISTRY_TABLES:
                await conn.execute(text(f"UPDATE {qualified(table)} SET is_system_defined = true"))

        with store_errors("version stamp"):
            await conn.execute(
                insert(hdb_version).values(version=INITIALISE_VERSION.value, upgraded_on=now)
            )

        logger.info("Catalog initialised at version {}", INITIALISE_VERSION.value)
        return INITIALISED_MSG
