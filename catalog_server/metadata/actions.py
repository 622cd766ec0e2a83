"""Metadata actions for admin queries.

``ActionBuilder.build`` validates a decoded query against the schema cache
it is given and returns an action. Running the action writes the registry
tables on the caller's connection and returns the JSON result bytes
together with the schema cache as it stands after the write.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import orjson
from sqlalchemy import Table, delete, insert, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncConnection

from catalog_server.catalog.errors import Inconsistent, MetadataError
from catalog_server.catalog.tx import run_script, store_errors
from catalog_server.logging_config import get_logger
from catalog_server.metadata.identity import ADMIN_ROLE, UserInfo
from catalog_server.metadata.queries import (
    Bulk,
    CreateArrayRelationship,
    CreateObjectRelationship,
    CreatePermission,
    CreateQueryTemplate,
    DropPermission,
    DropQueryTemplate,
    DropRelationship,
    QualifiedTable,
    RunSql,
    SetPermissionComment,
    SetQueryTemplateComment,
    SetRelationshipComment,
    TrackTable,
    UntrackTable,
)
from catalog_server.metadata.schema_cache import (
    PermissionInfo,
    QueryTemplateInfo,
    RelationshipInfo,
    SchemaCache,
    SchemaCacheBuilder,
    TableInfo,
    TableKey,
    load_foreign_key_targets,
)
from catalog_server.metadata.tables import (
    hdb_permission,
    hdb_query_template,
    hdb_relationship,
    hdb_table,
)

logger = get_logger(name=__name__)

QueryAction = Callable[[AsyncConnection], Awaitable[Tuple[bytes, SchemaCache]]]

SUCCESS = orjson.dumps({"message": "success"})

# raised by asyncpg when a prepared statement holds more than one command
SYNTAX_ERROR_SQLSTATE = "42601"


def _on_table(table: Table, key: TableKey) -> list:
    return [table.c.table_schema == key[0], table.c.table_name == key[1]]


def _require_table(cache: SchemaCache, table: QualifiedTable) -> TableInfo:
    info = cache.table(table.key)
    if info is None:
        raise MetadataError("not-exists", f'table "{table}" is not tracked')
    return info


def _is_multi_statement_rejection(exc: DBAPIError) -> bool:
    sqlstate = getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)
    return sqlstate == SYNTAX_ERROR_SQLSTATE and "multiple commands" in str(exc.orig)


def _mentions(definition: Any, name: str) -> bool:
    """True if ``name`` appears as a key anywhere inside a permission definition."""
    if isinstance(definition, dict):
        return any(key == name or _mentions(value, name) for key, value in definition.items())
    if isinstance(definition, list):
        return any(_mentions(item, name) for item in definition)
    return False


class ActionBuilder:
    """Builds the transactional action for each admin query variant."""

    def __init__(
        self,
        admin_role: str = ADMIN_ROLE,
        rebuilder: Optional[SchemaCacheBuilder] = None,
    ):
        self.admin_role = admin_role
        self.rebuilder = rebuilder or SchemaCacheBuilder()
        self._builders: Dict[type, Callable[..., QueryAction]] = {
            TrackTable: self._track_table,
            UntrackTable: self._untrack_table,
            CreateObjectRelationship: self._create_relationship,
            CreateArrayRelationship: self._create_relationship,
            DropRelationship: self._drop_relationship,
            SetRelationshipComment: self._set_relationship_comment,
            CreatePermission: self._create_permission,
            DropPermission: self._drop_permission,
            SetPermissionComment: self._set_permission_comment,
            CreateQueryTemplate: self._create_query_template,
            DropQueryTemplate: self._drop_query_template,
            SetQueryTemplateComment: self._set_query_template_comment,
            RunSql: self._run_sql,
        }

    def build(self, query, cache: SchemaCache, identity: UserInfo) -> QueryAction:
        """Validate ``query`` against ``cache`` and return its action.

        Raises:
            MetadataError: If the caller is not admin or the query conflicts
                with the cached metadata.
        """
        if identity.role != self.admin_role:
            raise MetadataError("access-denied", "restricted access : admin only", status=403)
        if isinstance(query, Bulk):
            return self._bulk(query, cache, identity)
        builder = self._builders.get(type(query))
        if builder is None:
            raise Inconsistent(f"no action registered for admin query {query.type!r}")
        return builder(query, cache)

    # ── tables ──────────────────────────────────────────────────────────────

    def _track_table(self, query: TrackTable, cache: SchemaCache) -> QueryAction:
        table = query.args
        if cache.table(table.key) is not None:
            raise MetadataError("already-tracked", f'view/table already tracked : "{table}"')

        async def run(conn: AsyncConnection) -> Tuple[bytes, SchemaCache]:
            with store_errors("track table"):
                await conn.execute(
                    insert(hdb_table).values(
                        table_schema=table.schema_name,
                        table_name=table.name,
                    )
                )
            updated = cache.copy()
            updated.tables[table.key] = TableInfo(name=table.key)
            logger.info("Tracked table {}", table)
            return SUCCESS, updated

        return run

    def _untrack_table(self, query: UntrackTable, cache: SchemaCache) -> QueryAction:
        args = query.args
        info = _require_table(cache, args.table)
        if info.is_system_defined:
            raise MetadataError(
                "constraint-violation",
                f'system defined table "{args.table}" cannot be untracked',
            )
        dependents = cache.dependents_of(info.name)
        if dependents and not args.cascade:
            names = ", ".join(f"{schema}.{table}.{rel}" for (schema, table), rel in dependents)
            raise MetadataError(
                "dependency-error",
                f"cannot untrack {args.table}; dependent relationships: {names}",
            )

        async def run(conn: AsyncConnection) -> Tuple[bytes, SchemaCache]:
            with store_errors("untrack table"):
                for owner, rel_name in dependents:
                    await conn.execute(
                        delete(hdb_relationship).where(
                            *_on_table(hdb_relationship, owner),
                            hdb_relationship.c.rel_name == rel_name,
                        )
                    )
                await conn.execute(delete(hdb_relationship).where(*_on_table(hdb_relationship, info.name)))
                await conn.execute(delete(hdb_permission).where(*_on_table(hdb_permission, info.name)))
                await conn.execute(delete(hdb_table).where(*_on_table(hdb_table, info.name)))

            updated = cache.copy()
            for owner, rel_name in dependents:
                del updated.tables[owner].relationships[rel_name]
            del updated.tables[info.name]
            logger.info("Untracked table {} ({} dependent relationships dropped)", args.table, len(dependents))
            return SUCCESS, updated

        return run

    # ── relationships ───────────────────────────────────────────────────────

    def _create_relationship(self, query, cache: SchemaCache) -> QueryAction:
        args = query.args
        rel_type = "object" if isinstance(query, CreateObjectRelationship) else "array"
        info = _require_table(cache, args.table)
        if args.name in info.relationships:
            raise MetadataError(
                "already-exists",
                f'relationship "{args.name}" already exists on table "{args.table}"',
            )
        remote = args.using.remote_table
        if remote is not None and cache.table(remote.key) is None:
            raise MetadataError("not-exists", f'remote table "{remote}" is not tracked')
        definition = args.using.model_dump(by_alias=True, exclude_none=True)

        async def run(conn: AsyncConnection) -> Tuple[bytes, SchemaCache]:
            if remote is not None:
                remote_key = remote.key
            else:
                remote_key = await self._foreign_key_target(
                    conn, cache, info, args.using.foreign_key_constraint_on
                )
            with store_errors("create relationship"):
                await conn.execute(
                    insert(hdb_relationship).values(
                        table_schema=info.name[0],
                        table_name=info.name[1],
                        rel_name=args.name,
                        rel_type=rel_type,
                        rel_def=definition,
                        comment=args.comment,
                    )
                )
            updated = cache.copy()
            updated.tables[info.name].relationships[args.name] = RelationshipInfo(
                name=args.name,
                rel_type=rel_type,
                definition=definition,
                remote_table=remote_key,
                comment=args.comment,
            )
            logger.info("Created {} relationship {} on {}", rel_type, args.name, args.table)
            return SUCCESS, updated

        return run

    @staticmethod
    async def _foreign_key_target(
        conn: AsyncConnection,
        cache: SchemaCache,
        info: TableInfo,
        column: str,
    ) -> TableKey:
        """Remote table of an object relationship over ``column``, which must carry a foreign key."""
        target = (await load_foreign_key_targets(conn)).get((info.name[0], info.name[1], column))
        if target is None:
            raise MetadataError(
                "not-exists",
                f'no foreign key constraint exists on column "{column}" of table "{info.name[0]}.{info.name[1]}"',
            )
        if cache.table(target) is None:
            raise MetadataError("not-exists", f'remote table "{target[0]}.{target[1]}" is not tracked')
        return target

    def _drop_relationship(self, query: DropRelationship, cache: SchemaCache) -> QueryAction:
        args = query.args
        info = _require_table(cache, args.table)
        rel = info.relationships.get(args.relationship)
        if rel is None:
            raise MetadataError(
                "not-exists",
                f'relationship "{args.relationship}" does not exist on table "{args.table}"',
            )
        if rel.is_system_defined:
            raise MetadataError(
                "constraint-violation",
                f'system defined relationship "{args.relationship}" cannot be dropped',
            )
        dependent_perms: List[PermissionInfo] = [
            perm for perm in info.permissions.values() if _mentions(perm.definition, rel.name)
        ]
        if dependent_perms and not args.cascade:
            names = ", ".join(f"{perm.role}.{perm.perm_type}" for perm in dependent_perms)
            raise MetadataError(
                "dependency-error",
                f'cannot drop relationship "{rel.name}"; dependent permissions: {names}',
            )

        async def run(conn: AsyncConnection) -> Tuple[bytes, SchemaCache]:
            with store_errors("drop relationship"):
                for perm in dependent_perms:
                    await conn.execute(
                        delete(hdb_permission).where(
                            *_on_table(hdb_permission, info.name),
                            hdb_permission.c.role_name == perm.role,
                            hdb_permission.c.perm_type == perm.perm_type,
                        )
                    )
                await conn.execute(
                    delete(hdb_relationship).where(
                        *_on_table(hdb_relationship, info.name),
                        hdb_relationship.c.rel_name == rel.name,
                    )
                )
            updated = cache.copy()
            target = updated.tables[info.name]
            for perm in dependent_perms:
                del target.permissions[(perm.role, perm.perm_type)]
            del target.relationships[rel.name]
            logger.info("Dropped relationship {} on {}", rel.name, args.table)
            return SUCCESS, updated

        return run

    def _set_relationship_comment(self, query: SetRelationshipComment, cache: SchemaCache) -> QueryAction:
        args = query.args
        info = _require_table(cache, args.table)
        if args.name not in info.relationships:
            raise MetadataError(
                "not-exists",
                f'relationship "{args.name}" does not exist on table "{args.table}"',
            )

        async def run(conn: AsyncConnection) -> Tuple[bytes, SchemaCache]:
            with store_errors("set relationship comment"):
                await conn.execute(
                    update(hdb_relationship)
                    .where(
                        *_on_table(hdb_relationship, info.name),
                        hdb_relationship.c.rel_name == args.name,
                    )
                    .values(comment=args.comment)
                )
            updated = cache.copy()
            updated.tables[info.name].relationships[args.name].comment = args.comment
            return SUCCESS, updated

        return run

    # ── permissions ─────────────────────────────────────────────────────────

    def _create_permission(self, query: CreatePermission, cache: SchemaCache) -> QueryAction:
        args = query.args
        perm_type = query.perm_type
        info = _require_table(cache, args.table)
        if args.role == self.admin_role:
            raise MetadataError(
                "constraint-violation",
                f'{perm_type} permission cannot be defined for the "{self.admin_role}" role',
            )
        if (args.role, perm_type) in info.permissions:
            raise MetadataError(
                "already-exists",
                f'{perm_type} permission already defined on table "{args.table}" with role "{args.role}"',
            )

        async def run(conn: AsyncConnection) -> Tuple[bytes, SchemaCache]:
            with store_errors("create permission"):
                await conn.execute(
                    insert(hdb_permission).values(
                        table_schema=info.name[0],
                        table_name=info.name[1],
                        role_name=args.role,
                        perm_type=perm_type,
                        perm_def=args.permission,
                        comment=args.comment,
                    )
                )
            updated = cache.copy()
            updated.tables[info.name].permissions[(args.role, perm_type)] = PermissionInfo(
                role=args.role,
                perm_type=perm_type,
                definition=args.permission,
                comment=args.comment,
            )
            logger.info("Created {} permission for role {} on {}", perm_type, args.role, args.table)
            return SUCCESS, updated

        return run

    def _existing_permission(self, info: TableInfo, table: QualifiedTable, role: str, perm_type: str) -> PermissionInfo:
        perm = info.permissions.get((role, perm_type))
        if perm is None:
            raise MetadataError(
                "not-exists",
                f'{perm_type} permission on table "{table}" for role "{role}" does not exist',
            )
        return perm

    def _drop_permission(self, query: DropPermission, cache: SchemaCache) -> QueryAction:
        args = query.args
        perm_type = query.perm_type
        info = _require_table(cache, args.table)
        perm = self._existing_permission(info, args.table, args.role, perm_type)
        if perm.is_system_defined:
            raise MetadataError(
                "constraint-violation",
                f"system defined {perm_type} permission cannot be dropped",
            )

        async def run(conn: AsyncConnection) -> Tuple[bytes, SchemaCache]:
            with store_errors("drop permission"):
                await conn.execute(
                    delete(hdb_permission).where(
                        *_on_table(hdb_permission, info.name),
                        hdb_permission.c.role_name == args.role,
                        hdb_permission.c.perm_type == perm_type,
                    )
                )
            updated = cache.copy()
            del updated.tables[info.name].permissions[(args.role, perm_type)]
            logger.info("Dropped {} permission for role {} on {}", perm_type, args.role, args.table)
            return SUCCESS, updated

        return run

    def _set_permission_comment(self, query: SetPermissionComment, cache: SchemaCache) -> QueryAction:
        args = query.args
        info = _require_table(cache, args.table)
        self._existing_permission(info, args.table, args.role, args.type)

        async def run(conn: AsyncConnection) -> Tuple[bytes, SchemaCache]:
            with store_errors("set permission comment"):
                await conn.execute(
                    update(hdb_permission)
                    .where(
                        *_on_table(hdb_permission, info.name),
                        hdb_permission.c.role_name == args.role,
                        hdb_permission.c.perm_type == args.type,
                    )
                    .values(comment=args.comment)
                )
            updated = cache.copy()
            updated.tables[info.name].permissions[(args.role, args.type)].comment = args.comment
            return SUCCESS, updated

        return run

    # ── query templates ─────────────────────────────────────────────────────

    def _create_query_template(self, query: CreateQueryTemplate, cache: SchemaCache) -> QueryAction:
        args = query.args
        if args.name in cache.query_templates:
            raise MetadataError("already-exists", f'query template "{args.name}" already exists')

        async def run(conn: AsyncConnection) -> Tuple[bytes, SchemaCache]:
            with store_errors("create query template"):
                await conn.execute(
                    insert(hdb_query_template).values(
                        template_name=args.name,
                        template_defn=args.template,
                        comment=args.comment,
                    )
                )
            updated = cache.copy()
            updated.query_templates[args.name] = QueryTemplateInfo(
                name=args.name,
                definition=args.template,
                comment=args.comment,
            )
            logger.info("Created query template {}", args.name)
            return SUCCESS, updated

        return run

    def _existing_template(self, cache: SchemaCache, name: str) -> QueryTemplateInfo:
        template = cache.query_templates.get(name)
        if template is None:
            raise MetadataError("not-exists", f'query template "{name}" does not exist')
        return template

    def _drop_query_template(self, query: DropQueryTemplate, cache: SchemaCache) -> QueryAction:
        name = query.args.name
        template = self._existing_template(cache, name)
        if template.is_system_defined:
            raise MetadataError(
                "constraint-violation",
                f'system defined query template "{name}" cannot be dropped',
            )

        async def run(conn: AsyncConnection) -> Tuple[bytes, SchemaCache]:
            with store_errors("drop query template"):
                await conn.execute(
                    delete(hdb_query_template).where(hdb_query_template.c.template_name == name)
                )
            updated = cache.copy()
            del updated.query_templates[name]
            logger.info("Dropped query template {}", name)
            return SUCCESS, updated

        return run

    def _set_query_template_comment(self, query: SetQueryTemplateComment, cache: SchemaCache) -> QueryAction:
        args = query.args
        self._existing_template(cache, args.name)

        async def run(conn: AsyncConnection) -> Tuple[bytes, SchemaCache]:
            with store_errors("set query template comment"):
                await conn.execute(
                    update(hdb_query_template)
                    .where(hdb_query_template.c.template_name == args.name)
                    .values(comment=args.comment)
                )
            updated = cache.copy()
            updated.query_templates[args.name].comment = args.comment
            return SUCCESS, updated

        return run

    # ── raw sql and bulk ────────────────────────────────────────────────────

    def _run_sql(self, query: RunSql, cache: SchemaCache) -> QueryAction:
        """Execute raw SQL as the admin.

        A single statement runs as a prepared statement so its rows come back
        as ``TuplesOk``. asyncpg refuses to prepare several statements at once;
        such a body is re-run as a script, under the simple query protocol,
        and always answers ``CommandOk``.
        """
        sql = query.args.sql

        async def run(conn: AsyncConnection) -> Tuple[bytes, SchemaCache]:
            payload = {"result_type": "CommandOk", "result": None}
            with store_errors("run sql"):
                try:
                    async with conn.begin_nested():
                        result = await conn.exec_driver_sql(sql)
                except DBAPIError as exc:
                    if not _is_multi_statement_rejection(exc):
                        raise
                    logger.debug("run_sql body holds several statements, running it as a script")
                    await run_script(conn, sql)
                else:
                    if result.returns_rows:
                        rows = [list(result.keys())] + [list(row) for row in result.all()]
                        payload = {"result_type": "TuplesOk", "result": rows}
            # raw sql may have changed anything the cache was derived from
            updated = await self.rebuilder.rebuild(conn)
            return orjson.dumps(payload, default=str), updated

        return run

    def _bulk(self, query: Bulk, cache: SchemaCache, identity: UserInfo) -> QueryAction:
        async def run(conn: AsyncConnection) -> Tuple[bytes, SchemaCache]:
            results = []
            current = cache
            for sub_query in query.args:
                action = self.build(sub_query, current, identity)
                payload, current = await action(conn)
                results.append(orjson.loads(payload))
            return orjson.dumps(results), current

        return run
