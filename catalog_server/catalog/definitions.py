"""Catalog object names and bundled DDL scripts.

Naming follows the GraphQL engine convention:
- hdb_catalog = metadata schema (registries + version row), source of truth
- hdb_views   = generated views and triggers, disposable cache state

The two SQL scripts under ``sql/`` ship with the package and are read once
at import time.
"""

from importlib import resources

# ============================================================
# SCHEMAS
# ============================================================

CATALOG_SCHEMA = "hdb_catalog"
VIEWS_SCHEMA = "hdb_views"

# ============================================================
# CATALOG TABLES
# ============================================================

VERSION_TABLE = "hdb_version"
TABLE_REGISTRY = "hdb_table"
RELATIONSHIP_REGISTRY = "hdb_relationship"
PERMISSION_REGISTRY = "hdb_permission"
QUERY_TEMPLATE_REGISTRY = "hdb_query_template"

# Tables carrying the is_system_defined flag, in marking order
REGISTRY_TABLES = [
    TABLE_REGISTRY,
    RELATIONSHIP_REGISTRY,
    PERMISSION_REGISTRY,
    QUERY_TEMPLATE_REGISTRY,
]

# Views created by initialise.sql and tracked at bootstrap
PRIMARY_KEY_VIEW = "hdb_primary_key"
FOREIGN_KEY_VIEW = "hdb_foreign_key_constraint"
PERMISSION_AGG_VIEW = "hdb_permission_agg"

# ============================================================
# EXTENSIONS
# ============================================================

FIRST_LAST_EXTENSION = "first_last_agg"


def qualified(table: str, schema: str = CATALOG_SCHEMA) -> str:
    """Return ``schema.table`` for catalog-owned objects."""
    return f"{schema}.{table}"


def quote_ident(name: str) -> str:
    """Quote an identifier discovered at runtime (e.g. a constraint name)."""
    return '"' + name.replace('"', '""') + '"'


def _read_sql(name: str) -> str:
    return resources.files(__package__).joinpath("sql").joinpath(name).read_text(encoding="utf-8")


FIRST_LAST_SQL = _read_sql("first_last.sql")
INITIALISE_SQL = _read_sql("initialise.sql")
