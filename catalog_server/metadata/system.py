"""Metadata registered for the catalog's own tables at initialisation."""

from catalog_server.catalog.definitions import (
    CATALOG_SCHEMA,
    FOREIGN_KEY_VIEW,
    PERMISSION_AGG_VIEW,
    PRIMARY_KEY_VIEW,
    QUERY_TEMPLATE_REGISTRY,
    RELATIONSHIP_REGISTRY,
    TABLE_REGISTRY,
)
from catalog_server.metadata.queries import AdminQuery, parse_admin_query

SYSTEM_TABLES = [
    TABLE_REGISTRY,
    PRIMARY_KEY_VIEW,
    FOREIGN_KEY_VIEW,
    RELATIONSHIP_REGISTRY,
    PERMISSION_AGG_VIEW,
    QUERY_TEMPLATE_REGISTRY,
]

_TABLE_COLUMNS = {"table_schema": "table_schema", "table_name": "table_name"}


def _catalog_table(name: str) -> dict:
    return {"schema": CATALOG_SCHEMA, "name": name}


def _manual_relationship(kind: str, name: str, remote: str) -> dict:
    return {
        "type": f"create_{kind}_relationship",
        "args": {
            "table": _catalog_table(TABLE_REGISTRY),
            "name": name,
            "using": {
                "manual_configuration": {
                    "remote_table": _catalog_table(remote),
                    "column_mapping": _TABLE_COLUMNS,
                },
            },
        },
    }


def system_metadata_query() -> AdminQuery:
    """The bulk query that tracks the catalog tables and their relationships."""
    queries = [
        {"type": "add_existing_table_or_view", "args": _catalog_table(name)}
        for name in SYSTEM_TABLES
    ]
    queries += [
        _manual_relationship("object", "primary_key", PRIMARY_KEY_VIEW),
        _manual_relationship("array", "relationships", RELATIONSHIP_REGISTRY),
        _manual_relationship("array", "permissions", PERMISSION_AGG_VIEW),
        _manual_relationship("array", "foreign_key_constraints", FOREIGN_KEY_VIEW),
    ]
    return parse_admin_query({"type": "bulk", "args": queries})
