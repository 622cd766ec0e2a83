"""Execution of admin queries against a freshly rebuilt schema cache."""

from typing import Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from catalog_server.catalog.tx import store_errors, transaction
from catalog_server.logging_config import get_logger
from catalog_server.metadata.actions import ActionBuilder
from catalog_server.metadata.identity import ADMIN_USER, UserInfo
from catalog_server.metadata.queries import AdminQuery, decode_admin_query
from catalog_server.metadata.schema_cache import SchemaCache, SchemaCacheBuilder

logger = get_logger(name=__name__)


class AdminQueryExecutor:
    """Decodes admin queries and runs their actions in one transaction each.

    The schema cache is rebuilt inside every ``execute`` transaction, so a
    query only sees metadata committed before its transaction began.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        rebuilder: Optional[SchemaCacheBuilder] = None,
        action_builder: Optional[ActionBuilder] = None,
        identity: UserInfo = ADMIN_USER,
    ):
        self.engine = engine
        self.rebuilder = rebuilder or SchemaCacheBuilder()
        self.action_builder = action_builder or ActionBuilder(rebuilder=self.rebuilder)
        self.identity = identity

    async def execute(self, raw_payload: bytes) -> bytes:
        """Run one admin query given as raw JSON bytes and return its JSON result.

        Decoding happens before a connection is acquired, so malformed input
        never opens a transaction.

        Raises:
            InvalidJSON: ``raw_payload`` is not JSON.
            DecodeError: The JSON is not a known admin query.
            MetadataError: The query conflicts with the current metadata.
            StoreFailure: A statement failed; the transaction was rolled back.
        """
        query = decode_admin_query(raw_payload)
        logger.info("Executing admin query {}", query.type)

        async with transaction(self.engine, "query") as conn:
            with store_errors("schema cache"):
                cache = await self.rebuilder.rebuild(conn)
            result, _ = await self.run(conn, query, cache, self.identity)
        return result

    async def run(
        self,
        conn: AsyncConnection,
        query: AdminQuery,
        cache: SchemaCache,
        identity: Optional[UserInfo] = None,
    ) -> Tuple[bytes, SchemaCache]:
        """Build and run ``query`` on an open transaction.

        Args:
            conn: Connection whose transaction the action joins.
            query: Decoded admin query.
            cache: Schema cache the query is validated against. Callers
                populating an empty catalog pass an empty cache.
            identity: Caller identity, defaults to the executor's identity.

        Returns:
            The result bytes and the schema cache after the query ran.
        """
        action = self.action_builder.build(query, cache, identity or self.identity)
        return await action(conn)
