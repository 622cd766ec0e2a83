"""Metadata query endpoint."""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from catalog_server.api.dependencies import get_catalog
from catalog_server.catalog.errors import CatalogError
from catalog_server.catalog.manager import CatalogManager
from catalog_server.logging_config import get_logger

logger = get_logger(name=__name__)

router = APIRouter(prefix="/v1", tags=["Metadata"])


class QueryError(BaseModel):
    code: str
    error: str
    status: int
    details: Dict[str, Any] = {}


def _error_response(error: CatalogError) -> JSONResponse:
    return JSONResponse(status_code=error.status, content=error.to_payload())


@router.post(
    "/query",
    responses={400: {"model": QueryError}, 403: {"model": QueryError}, 500: {"model": QueryError}},
)
async def run_query(request: Request, catalog: CatalogManager = Depends(get_catalog)):
    """Run one admin query; the body is passed to the executor as raw bytes."""
    body = await request.body()
    try:
        result = await catalog.executor.execute(body)
    except CatalogError as error:
        logger.warning("Admin query rejected: {} ({})", error.message, error.code)
        return _error_response(error)
    return Response(content=result, media_type="application/json")
