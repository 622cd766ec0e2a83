"""In-memory projection of the catalog registries.

The schema cache is derived state: it is rebuilt from the registry tables
for every operation that needs it and never written back.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import orjson
from pydantic import ValidationError
from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncConnection

from catalog_server.catalog.definitions import FOREIGN_KEY_VIEW, qualified
from catalog_server.catalog.errors import Inconsistent
from catalog_server.catalog.tx import store_errors
from catalog_server.logging_config import get_logger
from catalog_server.metadata.queries import ArrayRelationshipUsing, ObjectRelationshipUsing
from catalog_server.metadata.tables import (
    hdb_permission,
    hdb_query_template,
    hdb_relationship,
    hdb_table,
)

logger = get_logger(name=__name__)

TableKey = Tuple[str, str]
# (table_schema, table_name, column) of a single-column foreign key
ForeignKeyTargets = Dict[Tuple[str, str, str], TableKey]

FOREIGN_KEY_TARGETS_SQL = f"""
SELECT table_schema, table_name, ref_table_table_schema, ref_table, column_mapping
  FROM {qualified(FOREIGN_KEY_VIEW)}
"""


@dataclass
class RelationshipInfo:
    name: str
    rel_type: str
    definition: Dict[str, Any]
    remote_table: Optional[TableKey] = None
    comment: Optional[str] = None
    is_system_defined: bool = False


@dataclass
class PermissionInfo:
    role: str
    perm_type: str
    definition: Dict[str, Any]
    comment: Optional[str] = None
    is_system_defined: bool = False


@dataclass
class TableInfo:
    name: TableKey
    is_system_defined: bool = False
    relationships: Dict[str, RelationshipInfo] = field(default_factory=dict)
    # keyed by (role, perm_type)
    permissions: Dict[Tuple[str, str], PermissionInfo] = field(default_factory=dict)


@dataclass
class QueryTemplateInfo:
    name: str
    definition: Dict[str, Any]
    comment: Optional[str] = None
    is_system_defined: bool = False


@dataclass
class SchemaCache:
    tables: Dict[TableKey, TableInfo] = field(default_factory=dict)
    query_templates: Dict[str, QueryTemplateInfo] = field(default_factory=dict)

    def table(self, key: TableKey) -> Optional[TableInfo]:
        return self.tables.get(key)

    def dependents_of(self, key: TableKey) -> List[Tuple[TableKey, str]]:
        """Relationships on other tables that point at ``key``."""
        return [
            (info.name, rel.name)
            for info in self.tables.values()
            if info.name != key
            for rel in info.relationships.values()
            if rel.remote_table == key
        ]

    def copy(self) -> "SchemaCache":
        return copy.deepcopy(self)


def empty_schema_cache() -> SchemaCache:
    """Cache used while the catalog itself is being populated."""
    return SchemaCache()


async def load_foreign_key_targets(conn: AsyncConnection) -> ForeignKeyTargets:
    """Map every single-column foreign key in the database to the table it references."""
    with store_errors("foreign key lookup"):
        rows = (await conn.execute(text(FOREIGN_KEY_TARGETS_SQL))).mappings().all()

    targets: ForeignKeyTargets = {}
    for row in rows:
        mapping = row["column_mapping"]
        if isinstance(mapping, (str, bytes)):
            mapping = orjson.loads(mapping)
        if len(mapping) != 1:
            continue
        (column,) = mapping
        targets[(row["table_schema"], row["table_name"], column)] = (
            row["ref_table_table_schema"],
            row["ref_table"],
        )
    return targets


def uses_foreign_key_column(rel_type: str, definition: Dict[str, Any]) -> bool:
    return rel_type == "object" and definition.get("foreign_key_constraint_on") is not None


def remote_table_of(
    rel_type: str,
    definition: Dict[str, Any],
    owner: TableKey,
    foreign_keys: Optional[ForeignKeyTargets] = None,
) -> TableKey:
    """Resolve the remote table named by a stored relationship definition.

    Object relationships over a foreign key column are looked up in
    ``foreign_keys``; every other shape names its remote table directly.

    Raises:
        Inconsistent: If the definition does not parse or its foreign key
            no longer exists.
    """
    model = ObjectRelationshipUsing if rel_type == "object" else ArrayRelationshipUsing
    try:
        using = model.model_validate(definition)
    except ValidationError as exc:
        raise Inconsistent(f"stored {rel_type} relationship definition is invalid: {exc}") from exc
    remote = using.remote_table
    if remote is not None:
        return remote.key

    column = using.foreign_key_constraint_on
    target = (foreign_keys or {}).get((owner[0], owner[1], column))
    if target is None:
        raise Inconsistent(
            f"object relationship on {owner[0]}.{owner[1]} uses column {column}, "
            "which has no foreign key constraint"
        )
    return target


class SchemaCacheBuilder:
    """Rebuilds the schema cache from the four registry tables."""

    async def rebuild(self, conn: AsyncConnection) -> SchemaCache:
        with store_errors("schema cache"):
            tables = (await conn.execute(select(hdb_table))).mappings().all()
            relationships = (await conn.execute(select(hdb_relationship))).mappings().all()
            permissions = (await conn.execute(select(hdb_permission))).mappings().all()
            templates = (await conn.execute(select(hdb_query_template))).mappings().all()

        foreign_keys: ForeignKeyTargets = {}
        if any(uses_foreign_key_column(row["rel_type"], row["rel_def"]) for row in relationships):
            foreign_keys = await load_foreign_key_targets(conn)

        cache = SchemaCache()
        for row in tables:
            key = (row["table_schema"], row["table_name"])
            cache.tables[key] = TableInfo(
                name=key,
                is_system_defined=bool(row["is_system_defined"]),
            )

        for row in relationships:
            info = self._owner(cache, row)
            info.relationships[row["rel_name"]] = RelationshipInfo(
                name=row["rel_name"],
                rel_type=row["rel_type"],
                definition=row["rel_def"],
                remote_table=remote_table_of(row["rel_type"], row["rel_def"], info.name, foreign_keys),
                comment=row["comment"],
                is_system_defined=bool(row["is_system_defined"]),
            )

        for row in permissions:
            info = self._owner(cache, row)
            info.permissions[(row["role_name"], row["perm_type"])] = PermissionInfo(
                role=row["role_name"],
                perm_type=row["perm_type"],
                definition=row["perm_def"],
                comment=row["comment"],
                is_system_defined=bool(row["is_system_defined"]),
            )

        for row in templates:
            cache.query_templates[row["template_name"]] = QueryTemplateInfo(
                name=row["template_name"],
                definition=row["template_defn"],
                comment=row["comment"],
                is_system_defined=bool(row["is_system_defined"]),
            )

        logger.debug(
            "Schema cache rebuilt: {} tables, {} query templates",
            len(cache.tables),
            len(cache.query_templates),
        )
        return cache

    @staticmethod
    def _owner(cache: SchemaCache, row) -> TableInfo:
        key = (row["table_schema"], row["table_name"])
        info = cache.tables.get(key)
        if info is None:
            raise Inconsistent(f"metadata refers to untracked table {key[0]}.{key[1]}")
        return info
