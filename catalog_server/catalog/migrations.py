"""Forward migration of the catalog between versions.

Each registered step moves the catalog one version forward. ``migrate``
reads the recorded version, applies the path of steps leading to the
configured version and finalises, all inside one transaction.
"""

from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from catalog_server.catalog.definitions import (
    CATALOG_SCHEMA,
    PERMISSION_REGISTRY,
    QUERY_TEMPLATE_REGISTRY,
    RELATIONSHIP_REGISTRY,
    TABLE_REGISTRY,
    VIEWS_SCHEMA,
    qualified,
    quote_ident,
)
from catalog_server.catalog.errors import CatalogError, UnsupportedVersion
from catalog_server.catalog.probe import VersionProbe
from catalog_server.catalog.tx import store_errors, transaction
from catalog_server.catalog.versions import (
    DEFAULT_CATALOG_VERSION,
    CatalogVersion,
    MigrationStep,
    build_path_table,
)
from catalog_server.logging_config import get_logger
from catalog_server.metadata.schema_cache import SchemaCacheBuilder
from catalog_server.metadata.tables import hdb_version

logger = get_logger(name=__name__)

ALREADY_LATEST_MSG = "migrate: already at the latest version"
MIGRATED_MSG = "migrate: successfully migrated"

FOREIGN_KEYS_SQL = """
SELECT constraint_name
  FROM information_schema.table_constraints
 WHERE table_schema = :table_schema
   AND table_name = :table_name
   AND constraint_type = 'FOREIGN KEY'
"""


async def drop_foreign_keys(conn: AsyncConnection, schema: str, table: str) -> List[str]:
    """Drop every foreign key on ``schema.table`` and return the dropped names."""
    result = await conn.execute(
        text(FOREIGN_KEYS_SQL),
        {"table_schema": schema, "table_name": table},
    )
    constraints = list(result.scalars().all())
    for constraint in constraints:
        await conn.execute(
            text(f"ALTER TABLE {qualified(table, schema)} DROP CONSTRAINT {quote_ident(constraint)}")
        )
    return constraints


async def add_foreign_key_on_update_cascade(conn: AsyncConnection, schema: str, table: str) -> None:
    await conn.execute(
        text(
            f"ALTER TABLE {qualified(table, schema)} "
            "ADD FOREIGN KEY (table_schema, table_name) "
            f"REFERENCES {qualified(TABLE_REGISTRY)}(table_schema, table_name) "
            "ON UPDATE CASCADE"
        )
    )


async def migrate_from_0_8(conn: AsyncConnection) -> None:
    """0.8 -> 1: comment columns and normalised query template definitions."""
    with store_errors("migration 0.8 -> 1"):
        for table in (RELATIONSHIP_REGISTRY, PERMISSION_REGISTRY, QUERY_TEMPLATE_REGISTRY):
            await conn.execute(text(f"ALTER TABLE {qualified(table)} ADD COLUMN comment TEXT NULL"))
        await conn.execute(
            text(
                f"UPDATE {qualified(QUERY_TEMPLATE_REGISTRY)} "
                "SET template_defn = json_build_object('type', 'select', 'args', template_defn->'select')"
            )
        )


async def migrate_from_1(conn: AsyncConnection) -> None:
    """1 -> 1.1: registry foreign keys follow renames of tracked tables."""
    with store_errors("migration 1 -> 1.1"):
        for table in (PERMISSION_REGISTRY, RELATIONSHIP_REGISTRY):
            dropped = await drop_foreign_keys(conn, CATALOG_SCHEMA, table)
            if len(dropped) != 1:
                logger.warning(
                    "Expected one foreign key on {}, dropped {}: {}",
                    qualified(table),
                    len(dropped),
                    dropped,
                )
            await add_foreign_key_on_update_cascade(conn, CATALOG_SCHEMA, table)


CATALOG_MIGRATIONS = (
    MigrationStep(CatalogVersion.V0_8, CatalogVersion.V1, migrate_from_0_8),
    MigrationStep(CatalogVersion.V1, CatalogVersion.V1_1, migrate_from_1),
)


class MigrationChain:
    """Carries a recorded catalog forward to ``current_version``."""

    def __init__(
        self,
        engine: AsyncEngine,
        rebuilder: Optional[SchemaCacheBuilder] = None,
        current_version: CatalogVersion = DEFAULT_CATALOG_VERSION,
        probe: Optional[VersionProbe] = None,
        steps: Sequence[MigrationStep] = CATALOG_MIGRATIONS,
    ):
        self.engine = engine
        self.rebuilder = rebuilder or SchemaCacheBuilder()
        self.current_version = current_version
        self.probe = probe or VersionProbe()
        self.paths = build_path_table(steps, current_version)

    async def migrate(self, now: datetime) -> str:
        """Migrate the catalog to ``current_version``.

        Args:
            now: Timestamp recorded as ``upgraded_on`` after a migration.

        Raises:
            CatalogUninitialized: No version row to migrate from.
            UnsupportedVersion: The recorded version has no path to the target.
            StoreFailure: A step failed; nothing was changed.
        """
        async with transaction(self.engine, "migrate") as conn:
            recorded = await self.probe.current_version(conn)
            if recorded == self.current_version:
                logger.info("Catalog already at version {}", recorded.value)
                return ALREADY_LATEST_MSG

            steps = self.paths.get(recorded)
            if steps is None:
                raise UnsupportedVersion(recorded.value)

            for step in steps:
                logger.info("Applying catalog migration {}", step.name)
                await step.apply(conn)

            await self._finalize(conn, now)

        logger.info("Catalog migrated from {} to {}", recorded.value, self.current_version.value)
        return MIGRATED_MSG

    async def _finalize(self, conn: AsyncConnection, now: datetime) -> None:
        with store_errors("version stamp"):
            await conn.execute(
                update(hdb_version).values(version=self.current_version.value, upgraded_on=now)
            )

        # generated views are regenerated from metadata, never migrated
        with store_errors("views reset"):
            await conn.execute(text(f"DROP SCHEMA IF EXISTS {VIEWS_SCHEMA} CASCADE"))
            await conn.execute(text(f"CREATE SCHEMA {VIEWS_SCHEMA}"))

        try:
            async with conn.begin_nested():
                await self.rebuilder.rebuild(conn)
        except (CatalogError, SQLAlchemyError) as exc:
            logger.warning("Schema cache rebuild after migration failed: {}", exc)
