"""Read-only checks used to decide how to initialise or migrate the catalog."""

from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncConnection

from catalog_server.catalog.definitions import CATALOG_SCHEMA, VERSION_TABLE, qualified
from catalog_server.catalog.errors import CatalogUninitialized, Inconsistent
from catalog_server.catalog.tx import store_errors
from catalog_server.catalog.versions import CatalogVersion, VersionRecord
from catalog_server.metadata.tables import hdb_version

SCHEMA_EXISTS_SQL = """
SELECT EXISTS (
    SELECT 1
      FROM information_schema.schemata
     WHERE schema_name = :schema_name
)
"""

TABLE_EXISTS_SQL = """
SELECT EXISTS (
    SELECT 1
      FROM pg_tables
     WHERE schemaname = :schema_name AND tablename = :table_name
)
"""


class VersionProbe:
    """Existence and version checks against the store's system catalogs."""

    async def schema_exists(self, conn: AsyncConnection, name: str) -> bool:
        with store_errors("schema lookup"):
            result = await conn.execute(text(SCHEMA_EXISTS_SQL), {"schema_name": name})
            return bool(result.scalar())

    async def version_table_exists(
        self,
        conn: AsyncConnection,
        schema: str = CATALOG_SCHEMA,
        table: str = VERSION_TABLE,
    ) -> bool:
        with store_errors("version table lookup"):
            result = await conn.execute(
                text(TABLE_EXISTS_SQL),
                {"schema_name": schema, "table_name": table},
            )
            return bool(result.scalar())

    async def version_record(self, conn: AsyncConnection) -> VersionRecord:
        """Read the single version row.

        Raises:
            CatalogUninitialized: If the version table is missing or empty.
            Inconsistent: If more than one version row exists.
            UnsupportedVersion: If the recorded label is not a known version.
        """
        if not await self.version_table_exists(conn):
            raise CatalogUninitialized(
                f"catalog is not initialised: {qualified(VERSION_TABLE)} does not exist"
            )

        with store_errors("version lookup"):
            result = await conn.execute(select(hdb_version.c.version, hdb_version.c.upgraded_on))
            rows = result.mappings().all()

        if not rows:
            raise CatalogUninitialized(
                f"catalog is not initialised: {qualified(VERSION_TABLE)} is empty"
            )
        if len(rows) > 1:
            raise Inconsistent(
                f"expected exactly one row in {qualified(VERSION_TABLE)}, found {len(rows)}"
            )

        row = rows[0]
        return VersionRecord(
            version=CatalogVersion.parse(row["version"]),
            upgraded_on=row["upgraded_on"],
        )

    async def current_version(self, conn: AsyncConnection) -> CatalogVersion:
        record = await self.version_record(conn)
        return record.version
