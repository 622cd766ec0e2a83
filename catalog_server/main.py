"""HTTP entry point serving the metadata query API."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncEngine

from catalog_server.api import api_router
from catalog_server.catalog.manager import build_catalog_manager
from catalog_server.config.postgres import dispose_engine, init_engine
from catalog_server.logging_config import configure_logging, get_logger
from catalog_server.middleware.request_logging import RequestLoggingMiddleware
from catalog_server.settings import Settings, get_settings

logger = get_logger(name=__name__)


def create_app(settings: Optional[Settings] = None, engine: Optional[AsyncEngine] = None) -> FastAPI:
    """Build the application.

    Args:
        settings: Settings to use, defaults to ``get_settings()``.
        engine: Engine to serve from. When omitted the global engine is
            created on startup and disposed on shutdown.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        active = engine
        if active is None:
            active = init_engine(
                settings.postgres_url,
                pool_size=settings.postgres_pool_size,
                max_overflow=settings.postgres_max_overflow,
                statement_timeout_ms=settings.postgres_statement_timeout_ms,
            )
        app.state.catalog = build_catalog_manager(
            active,
            current_version=settings.catalog_version,
            admin_role=settings.admin_role,
        )
        logger.info("Catalog server ready (catalog version {})", settings.catalog_version.value)
        yield
        if engine is None:
            await dispose_engine()

    app = FastAPI(title="GraphQL Catalog Server", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(api_router)
    return app


def main() -> None:
    import uvicorn

    configure_logging()
    settings = get_settings()
    uvicorn.run(create_app(settings), host=settings.uvicorn_host, port=settings.uvicorn_port)


if __name__ == "__main__":
    main()
