"""PostgreSQL-backed metadata catalog for a GraphQL-to-SQL server."""

__version__ = "1.1.0"
