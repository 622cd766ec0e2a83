from fastapi import APIRouter

from . import health
from . import query

api_router = APIRouter()

api_router.include_router(query.router)
api_router.include_router(health.router)
