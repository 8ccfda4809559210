"""
API Router
==========

Mounts every route module at its public path.
"""

from fastapi import APIRouter

from s2s_api.api.endpoints import api_keys, auth, databases, health, metrics


api_router = APIRouter()

api_router.include_router(health.router)
api_router.include_router(metrics.router)
api_router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
api_router.include_router(api_keys.router, prefix="/api-keys", tags=["API Keys"])
api_router.include_router(databases.router, prefix="/api", tags=["Data"])
