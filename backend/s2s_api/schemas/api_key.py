"""API key schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from s2s_api.schemas.base import BaseSchema, EnvelopeSchema


class ApiKeyCreateRequest(BaseSchema):
    name: str | None = Field(default=None, max_length=255)
    description: str | None = None
    rate_limit_per_hour: int | None = Field(default=None, ge=1)
    expires_in_days: int | None = Field(default=None, ge=0, le=3650)


class ApiKeyUpdateRequest(BaseSchema):
    name: str | None = Field(default=None, max_length=255)
    description: str | None = None
    is_active: bool | None = None
    rate_limit_per_hour: int | None = Field(default=None, ge=1)


class ApiKeyResponse(BaseSchema):
    id: str
    key_prefix: str
    name: str
    description: str | None = None
    rate_limit_per_hour: int
    rate_limit_per_day: int
    is_active: bool
    total_requests: int
    created_at: datetime
    last_used_at: datetime | None = None
    expires_at: datetime | None = None


class ApiKeyDetail(ApiKeyResponse):
    permissions: dict


class ApiKeyListResponse(EnvelopeSchema):
    keys: list[ApiKeyResponse]


class ApiKeyDetailResponse(EnvelopeSchema):
    key: ApiKeyDetail


class ApiKeyCreateResponse(EnvelopeSchema):
    message: str
    api_key: str
    key_id: str
    key_prefix: str
    name: str
    expires_at: datetime | None = None


class EndpointUsage(BaseSchema):
    endpoint: str
    count: int
    avg_response_time: float | None = None


class DailyUsage(BaseSchema):
    date: str
    count: int


class StatusUsage(BaseSchema):
    status_code: int
    count: int


class UsageBreakdown(BaseSchema):
    by_endpoint: list[EndpointUsage]
    by_day: list[DailyUsage]
    by_status: list[StatusUsage]


class ApiKeyUsageResponse(EnvelopeSchema):
    key_name: str
    total_requests: int
    period_days: int
    usage: UsageBreakdown
