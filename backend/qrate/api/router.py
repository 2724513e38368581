"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from qrate.api.routes import events, requests
from qrate.core.config import get_settings

api_router = APIRouter(prefix=get_settings().API_PREFIX)
api_router.include_router(events.router)
api_router.include_router(requests.router)
