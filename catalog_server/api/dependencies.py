"""FastAPI dependencies resolving the catalog components from app state."""

from fastapi import Request

from catalog_server.catalog.manager import CatalogManager


def get_catalog(request: Request) -> CatalogManager:
    return request.app.state.catalog
