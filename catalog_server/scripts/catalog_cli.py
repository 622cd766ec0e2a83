#!/usr/bin/env python3
"""
Catalog Management CLI

Usage:
    catalog-cli init                      # Create the catalog if it is missing
    catalog-cli migrate                   # Migrate the catalog to the configured version
    catalog-cli clean --yes               # Drop the catalog and generated views
    catalog-cli execute --file query.json # Run one admin query (use - for stdin)
"""

import argparse
import asyncio
import sys
from datetime import datetime, timezone
from typing import Optional, Sequence

from catalog_server.catalog.errors import CatalogError
from catalog_server.catalog.manager import CatalogManager, build_catalog_manager
from catalog_server.config.postgres import dispose_engine, init_engine
from catalog_server.logging_config import configure_logging, get_logger
from catalog_server.settings import get_settings

logger = get_logger(name=__name__)


def _read_payload(path: str) -> bytes:
    if path == "-":
        return sys.stdin.buffer.read()
    with open(path, "rb") as f:
        return f.read()


async def init_catalog(catalog: CatalogManager, args) -> str:
    return await catalog.bootstrapper.initialize(datetime.now(timezone.utc))


async def migrate_catalog(catalog: CatalogManager, args) -> str:
    return await catalog.migrations.migrate(datetime.now(timezone.utc))


async def clean_catalog(catalog: CatalogManager, args) -> str:
    await catalog.teardown.clean()
    return "clean: catalog dropped"


async def execute_query(catalog: CatalogManager, args) -> str:
    result = await catalog.executor.execute(_read_payload(args.file))
    return result.decode("utf-8")


COMMANDS = {
    "init": init_catalog,
    "migrate": migrate_catalog,
    "clean": clean_catalog,
    "execute": execute_query,
}


async def run_command(args, catalog: Optional[CatalogManager] = None) -> int:
    """Run the selected command and return the process exit code."""
    owns_engine = catalog is None
    if catalog is None:
        settings = get_settings()
        engine = init_engine(
            settings.postgres_url,
            pool_size=settings.postgres_pool_size,
            max_overflow=settings.postgres_max_overflow,
            statement_timeout_ms=settings.postgres_statement_timeout_ms,
        )
        catalog = build_catalog_manager(
            engine,
            current_version=settings.catalog_version,
            admin_role=settings.admin_role,
        )

    try:
        message = await COMMANDS[args.command](catalog, args)
    except CatalogError as e:
        logger.error("{} failed: {}", args.command, e.message)
        print(f"❌ {e.code}: {e.message}", file=sys.stderr)
        return 1
    finally:
        if owns_engine:
            await dispose_engine()

    print(message)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="GraphQL Catalog Management CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("init", help="Create the catalog if it is missing")
    subparsers.add_parser("migrate", help="Migrate the catalog to the configured version")

    clean_parser = subparsers.add_parser("clean", help="Drop the catalog and generated views")
    clean_parser.add_argument("--yes", action="store_true", help="Confirm dropping the catalog")

    execute_parser = subparsers.add_parser("execute", help="Run one admin query")
    execute_parser.add_argument("--file", default="-", help="JSON file holding the query, - for stdin")

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    if args.command == "clean" and not args.yes:
        print("Refusing to drop the catalog without --yes", file=sys.stderr)
        return 2

    configure_logging()
    return asyncio.run(run_command(args))


if __name__ == "__main__":
    sys.exit(main())
