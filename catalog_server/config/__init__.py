"""Connection management for the backing PostgreSQL store."""

from .postgres import dispose_engine, init_engine

__all__ = [
    "init_engine",
    "dispose_engine",
]
