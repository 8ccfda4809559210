"""Data catalog endpoints.

Every route here runs behind ``resolve_api_key`` and ``enforce_rate_limit``.
Public callers see the public databases; API-key callers see the databases
granted in their key's permissions.
"""

from fastapi import APIRouter, Depends

from s2s_api.api.deps import get_settings_dep
from s2s_api.core.config import Settings
from s2s_api.core.exceptions import AuthorizationError, NotFoundError
from s2s_api.middleware.auth import AccessContext, resolve_api_key
from s2s_api.middleware.rate_limit import enforce_rate_limit
from s2s_api.schemas.catalog import (
    DatabaseDetailResponse,
    DatabaseInfo,
    DatabaseListResponse,
)


router = APIRouter(dependencies=[Depends(enforce_rate_limit)])

DATABASE_DESCRIPTIONS = {
    "raw_data": "Raw sensor data as logged by the stations",
    "stage_clean_data": "Cleaned sensor data (staging)",
    "stage_qaqc_data": "Quality-controlled sensor data (staging)",
    "seasonal_qaqc_data": "Quality-controlled data aggregated by season",
}


def _describe(name: str, settings: Settings) -> DatabaseInfo:
    return DatabaseInfo(
        name=name,
        description=DATABASE_DESCRIPTIONS.get(name, name),
        public=name in settings.PUBLIC_DATABASES,
    )


def readable_databases(access: AccessContext, settings: Settings) -> list[str]:
    if access.identity is None:
        return list(settings.PUBLIC_DATABASES)
    return access.identity.databases


@router.get("/databases", response_model=DatabaseListResponse)
async def list_databases(
    access: AccessContext = Depends(resolve_api_key),
    settings: Settings = Depends(get_settings_dep),
):
    return DatabaseListResponse(
        access_level=access.access_level,
        databases=[_describe(name, settings) for name in readable_databases(access, settings)],
    )


@router.get("/databases/{database}", response_model=DatabaseDetailResponse)
async def get_database_info(
    database: str,
    access: AccessContext = Depends(resolve_api_key),
    settings: Settings = Depends(get_settings_dep),
):
    if database not in DATABASE_DESCRIPTIONS and database not in settings.PUBLIC_DATABASES:
        raise NotFoundError("DATABASE_NOT_FOUND", f"Database '{database}' not found")

    if database not in readable_databases(access, settings):
        raise AuthorizationError(
            "ACCESS_DENIED",
            "This database requires an API key with access to it",
        )

    return DatabaseDetailResponse(
        access_level=access.access_level,
        database=_describe(database, settings),
    )
