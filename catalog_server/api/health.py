"""Health check and catalog status endpoint."""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from catalog_server.api.dependencies import get_catalog
from catalog_server.catalog.manager import CatalogManager
from catalog_server.logging_config import get_logger

logger = get_logger(name=__name__)

router = APIRouter(prefix="/v1/health", tags=["Health"])


class CatalogStatus(BaseModel):
    initialised: bool
    version: Optional[str] = None
    expected_version: str
    upgraded_on: Optional[str] = None
    error: Optional[str] = None


class HealthResponse(BaseModel):
    status: str  # "healthy" or "unhealthy"
    catalog: CatalogStatus


@router.get("", response_model=HealthResponse)
async def health_check(catalog: CatalogManager = Depends(get_catalog)):
    """Report whether the catalog is reachable and at the expected version."""
    expected = catalog.migrations.current_version.value
    status = CatalogStatus(initialised=False, expected_version=expected)

    try:
        async with catalog.engine.connect() as conn:
            record = await catalog.probe.version_record(conn)
        status = CatalogStatus(
            initialised=True,
            version=record.version.value,
            expected_version=expected,
            upgraded_on=record.upgraded_on.isoformat(),
        )
    except Exception as e:
        logger.warning("Catalog status check failed: {}", e)
        status.error = str(e)

    overall = "healthy" if status.version == expected else "unhealthy"
    return HealthResponse(status=overall, catalog=status)
