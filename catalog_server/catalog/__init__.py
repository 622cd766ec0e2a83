"""Catalog versioning, migration and admin query execution.

Import from the submodules directly, e.g.
``from catalog_server.catalog.manager import build_catalog_manager``.
"""
