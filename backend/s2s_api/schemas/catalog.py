"""Data catalog schemas."""

from s2s_api.schemas.base import BaseSchema, EnvelopeSchema


class DatabaseInfo(BaseSchema):
    name: str
    description: str
    public: bool


class DatabaseListResponse(EnvelopeSchema):
    access_level: str
    databases: list[DatabaseInfo]


class DatabaseDetailResponse(EnvelopeSchema):
    access_level: str
    database: DatabaseInfo
