"""SQLAlchemy Table objects for the catalog registries.

Mirrors the current-version shape created by ``initialise.sql``. Every
table lives on the shared ``metadata`` instance bound to ``hdb_catalog``.
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKeyConstraint,
    MetaData,
    Table,
    Text,
    false,
)
from sqlalchemy.dialects.postgresql import JSONB

from catalog_server.catalog.definitions import (
    CATALOG_SCHEMA,
    PERMISSION_REGISTRY,
    QUERY_TEMPLATE_REGISTRY,
    RELATIONSHIP_REGISTRY,
    TABLE_REGISTRY,
    VERSION_TABLE,
)

metadata = MetaData(schema=CATALOG_SCHEMA)

# ── hdb_version ─────────────────────────────────────────────────────────────

hdb_version = Table(
    VERSION_TABLE,
    metadata,
    Column("version", Text, nullable=False),
    Column("upgraded_on", DateTime(timezone=True), nullable=False),
)

# ── hdb_table ───────────────────────────────────────────────────────────────

hdb_table = Table(
    TABLE_REGISTRY,
    metadata,
    Column("table_schema", Text, primary_key=True),
    Column("table_name", Text, primary_key=True),
    Column("is_system_defined", Boolean, server_default=false()),
)

# ── hdb_relationship ────────────────────────────────────────────────────────

hdb_relationship = Table(
    RELATIONSHIP_REGISTRY,
    metadata,
    Column("table_schema", Text, primary_key=True),
    Column("table_name", Text, primary_key=True),
    Column("rel_name", Text, primary_key=True),
    Column("rel_type", Text),
    Column("rel_def", JSONB, nullable=False),
    Column("comment", Text, nullable=True),
    Column("is_system_defined", Boolean, server_default=false()),
    CheckConstraint("rel_type IN ('object', 'array')"),
    ForeignKeyConstraint(
        ["table_schema", "table_name"],
        [f"{CATALOG_SCHEMA}.{TABLE_REGISTRY}.table_schema", f"{CATALOG_SCHEMA}.{TABLE_REGISTRY}.table_name"],
        onupdate="CASCADE",
    ),
)

# ── hdb_permission ──────────────────────────────────────────────────────────

hdb_permission = Table(
    PERMISSION_REGISTRY,
    metadata,
    Column("table_schema", Text, primary_key=True),
    Column("table_name", Text, primary_key=True),
    Column("role_name", Text, primary_key=True),
    Column("perm_type", Text, primary_key=True),
    Column("perm_def", JSONB, nullable=False),
    Column("comment", Text, nullable=True),
    Column("is_system_defined", Boolean, server_default=false()),
    CheckConstraint("perm_type IN ('insert', 'select', 'update', 'delete')"),
    ForeignKeyConstraint(
        ["table_schema", "table_name"],
        [f"{CATALOG_SCHEMA}.{TABLE_REGISTRY}.table_schema", f"{CATALOG_SCHEMA}.{TABLE_REGISTRY}.table_name"],
        onupdate="CASCADE",
    ),
)

# ── hdb_query_template ──────────────────────────────────────────────────────

hdb_query_template = Table(
    QUERY_TEMPLATE_REGISTRY,
    metadata,
    Column("template_name", Text, primary_key=True),
    Column("template_defn", JSONB, nullable=False),
    Column("comment", Text, nullable=True),
    Column("is_system_defined", Boolean, server_default=false()),
)
