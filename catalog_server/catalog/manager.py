"""Wiring of the catalog components around one engine."""

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine

from catalog_server.catalog.bootstrap import CatalogBootstrapper
from catalog_server.catalog.executor import AdminQueryExecutor
from catalog_server.catalog.migrations import MigrationChain
from catalog_server.catalog.probe import VersionProbe
from catalog_server.catalog.teardown import CatalogTeardown
from catalog_server.catalog.versions import DEFAULT_CATALOG_VERSION, CatalogVersion
from catalog_server.metadata.actions import ActionBuilder
from catalog_server.metadata.identity import UserInfo
from catalog_server.metadata.schema_cache import SchemaCacheBuilder


@dataclass
class CatalogManager:
    engine: AsyncEngine
    probe: VersionProbe
    executor: AdminQueryExecutor
    bootstrapper: CatalogBootstrapper
    migrations: MigrationChain
    teardown: CatalogTeardown


def build_catalog_manager(
    engine: AsyncEngine,
    current_version: CatalogVersion = DEFAULT_CATALOG_VERSION,
    admin_role: str = "admin",
) -> CatalogManager:
    """Assemble the catalog components sharing one engine, probe and cache builder."""
    identity = UserInfo(role=admin_role)
    probe = VersionProbe()
    rebuilder = SchemaCacheBuilder()
    executor = AdminQueryExecutor(
        engine,
        rebuilder=rebuilder,
        action_builder=ActionBuilder(admin_role=admin_role, rebuilder=rebuilder),
        identity=identity,
    )
    return CatalogManager(
        engine=engine,
        probe=probe,
        executor=executor,
        bootstrapper=CatalogBootstrapper(
            engine,
            executor,
            current_version=current_version,
            probe=probe,
        ),
        migrations=MigrationChain(
            engine,
            rebuilder=rebuilder,
            current_version=current_version,
            probe=probe,
        ),
        teardown=CatalogTeardown(engine),
    )
