"""API key management endpoints.

All routes act on the caller's own keys only.
"""

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from s2s_api.api.deps import get_api_key_service, get_client_ip
from s2s_api.core.database import get_db
from s2s_api.core.exceptions import ValidationError, handle_route_errors
from s2s_api.core.security import SessionClaims
from s2s_api.middleware.auth import require_session
from s2s_api.models.audit import AuditAction
from s2s_api.schemas.api_key import (
    ApiKeyCreateRequest,
    ApiKeyCreateResponse,
    ApiKeyDetail,
    ApiKeyDetailResponse,
    ApiKeyListResponse,
    ApiKeyResponse,
    ApiKeyUpdateRequest,
    ApiKeyUsageResponse,
    UsageBreakdown,
)
from s2s_api.schemas.base import MessageResponse
from s2s_api.services.api_key_service import ApiKeyService
from s2s_api.services.audit_service import AuditService


router = APIRouter()


@router.get("", response_model=ApiKeyListResponse)
@handle_route_errors("FETCH_KEYS_ERROR", "Failed to fetch API keys")
async def list_api_keys(
    claims: SessionClaims = Depends(require_session),
    db: AsyncSession = Depends(get_db),
    api_keys: ApiKeyService = Depends(get_api_key_service),
):
    keys = await api_keys.list_keys(db, claims.user_id)
    return ApiKeyListResponse(keys=[ApiKeyResponse.model_validate(k) for k in keys])


@router.post("", response_model=ApiKeyCreateResponse, status_code=status.HTTP_201_CREATED)
@handle_route_errors("CREATE_KEY_ERROR", "Failed to create API key")
async def create_api_key(
    body: ApiKeyCreateRequest,
    request: Request,
    claims: SessionClaims = Depends(require_session),
    db: AsyncSession = Depends(get_db),
    api_keys: ApiKeyService = Depends(get_api_key_service),
):
    name = (body.name or "").strip()
    if not name:
        raise ValidationError("VALIDATION_ERROR", "API key name is required")

    api_key, plaintext = await api_keys.create_api_key(
        session=db,
        user_id=claims.user_id,
        name=name,
        description=body.description,
        rate_limit_per_hour=body.rate_limit_per_hour,
        expires_in_days=body.expires_in_days,
    )
    await AuditService(db).log_event(
        AuditAction.API_KEY_CREATED,
        user_id=claims.user_id,
        details={"key_id": api_key.id, "key_name": name, "key_prefix": api_key.key_prefix},
        ip_address=get_client_ip(request),
    )
    await db.commit()

    return ApiKeyCreateResponse(
        message="API key created successfully. Save this key securely - it will not be shown again.",
        api_key=plaintext,
        key_id=api_key.id,
        key_prefix=api_key.key_prefix,
        name=api_key.name,
        expires_at=api_key.expires_at,
    )


@router.get("/{key_id}", response_model=ApiKeyDetailResponse)
@handle_route_errors("FETCH_KEY_ERROR", "Failed to fetch API key")
async def get_api_key(
    key_id: str,
    claims: SessionClaims = Depends(require_session),
    db: AsyncSession = Depends(get_db),
    api_keys: ApiKeyService = Depends(get_api_key_service),
):
    api_key = await api_keys.get_key(db, claims.user_id, key_id)
    return ApiKeyDetailResponse(key=ApiKeyDetail.model_validate(api_key))


@router.put("/{key_id}", response_model=MessageResponse)
@handle_route_errors("UPDATE_KEY_ERROR", "Failed to update API key")
async def update_api_key(
    key_id: str,
    body: ApiKeyUpdateRequest,
    request: Request,
    claims: SessionClaims = Depends(require_session),
    db: AsyncSession = Depends(get_db),
    api_keys: ApiKeyService = Depends(get_api_key_service),
):
    changes = body.model_dump(include=body.model_fields_set)
    api_key, applied = await api_keys.update_key(db, claims.user_id, key_id, changes)
    await AuditService(db).log_event(
        AuditAction.API_KEY_UPDATED,
        user_id=claims.user_id,
        details={"key_id": api_key.id, "updates": applied},
        ip_address=get_client_ip(request),
    )
    await db.commit()
    return MessageResponse(message="API key updated successfully")


@router.delete("/{key_id}", response_model=MessageResponse)
@handle_route_errors("REVOKE_KEY_ERROR", "Failed to revoke API key")
async def revoke_api_key(
    key_id: str,
    request: Request,
    claims: SessionClaims = Depends(require_session),
    db: AsyncSession = Depends(get_db),
    api_keys: ApiKeyService = Depends(get_api_key_service),
):
    api_key = await api_keys.revoke_key(db, claims.user_id, key_id)
    await AuditService(db).log_event(
        AuditAction.API_KEY_REVOKED,
        user_id=claims.user_id,
        details={"key_id": api_key.id, "key_name": api_key.name},
        ip_address=get_client_ip(request),
    )
    await db.commit()
    return MessageResponse(message="API key revoked successfully")


@router.get("/{key_id}/usage", response_model=ApiKeyUsageResponse)
@handle_route_errors("USAGE_STATS_ERROR", "Failed to fetch usage statistics")
async def get_api_key_usage(
    key_id: str,
    days: int = Query(default=7, ge=1, le=365),
    claims: SessionClaims = Depends(require_session),
    db: AsyncSession = Depends(get_db),
    api_keys: ApiKeyService = Depends(get_api_key_service),
):
    api_key, usage = await api_keys.usage_stats(db, claims.user_id, key_id, days=days)
    return ApiKeyUsageResponse(
        key_name=api_key.name,
        total_requests=api_key.total_requests,
        period_days=days,
        usage=UsageBreakdown.model_validate(usage),
    )
