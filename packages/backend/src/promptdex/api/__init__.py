"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Unlike a per-router `dependencies=[...]` list, authentication here
is one app-wide dependency (promptdex.auth.dependencies.security_gate)
installed in create_app(). Which routes are open is decided by the route
policy, so business routers mounted later need no auth wiring of their own.
"""

from fastapi import APIRouter

from promptdex.api.auth import router as auth_router
from promptdex.api.health import router as health_router
from promptdex.api.oauth2 import router as oauth2_router

api_router = APIRouter()

api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])
api_router.include_router(oauth2_router, tags=["oauth2"])
