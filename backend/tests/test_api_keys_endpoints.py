"""API key management endpoint tests."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from s2s_api.models import ApiKey, AuditAction, AuditLogEntry

from conftest import create_key, load_key, login_token, signup


@pytest.mark.asyncio
async def test_create_key_returns_plaintext_once(client: AsyncClient, auth_headers: dict, database):
    created = await create_key(client, auth_headers, name="t")

    raw = created["api_key"]
    assert created["success"] is True
    assert raw.startswith("s2s_")
    assert len(raw) == 36
    assert raw[4:].isalnum()
    assert created["key_prefix"] == raw[:12]
    assert created["name"] == "t"
    assert created["expires_at"] is None

    listing = await client.get("/api-keys", headers=auth_headers)
    assert listing.status_code == 200
    keys = listing.json()["keys"]
    assert len(keys) == 1
    assert keys[0]["key_prefix"] == raw[:12]
    assert raw not in listing.text
    assert "key_hash" not in keys[0]

    detail = await client.get(f"/api-keys/{created['key_id']}", headers=auth_headers)
    assert detail.status_code == 200
    key = detail.json()["key"]
    assert key["permissions"]["databases"] == ["raw_data", "stage_clean_data", "stage_qaqc_data", "seasonal_qaqc_data"]
    assert key["permissions"]["operations"] == ["read"]
    assert key["rate_limit_per_hour"] == 1000
    assert key["rate_limit_per_day"] == 10000
    assert key["total_requests"] == 0
    assert raw not in detail.text

    stored = await load_key(database, created["key_id"])
    assert stored.key_hash != raw
    assert stored.key_hash.startswith("$2")


@pytest.mark.asyncio
async def test_create_key_requires_session(client: AsyncClient):
    response = await client.post("/api-keys", json={"name": "t"})

    assert response.status_code == 401
    assert response.json()["error"] == "UNAUTHORIZED"


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [{}, {"name": ""}, {"name": "   "}])
async def test_create_key_requires_name(client: AsyncClient, auth_headers: dict, body: dict):
    response = await client.post("/api-keys", json=body, headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["error"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_create_key_with_options(client: AsyncClient, auth_headers: dict):
    before = datetime.now(timezone.utc)
    created = await create_key(
        client,
        auth_headers,
        name="  nightly export  ",
        description="cron job",
        rate_limit_per_hour=50,
        expires_in_days=30,
    )

    expires_at = datetime.fromisoformat(created["expires_at"].replace("Z", "+00:00"))
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    assert before + timedelta(days=29) < expires_at < before + timedelta(days=31)

    key = (await client.get(f"/api-keys/{created['key_id']}", headers=auth_headers)).json()["key"]
    assert key["name"] == "nightly export"
    assert key["description"] == "cron job"
    assert key["rate_limit_per_hour"] == 50


@pytest.mark.asyncio
async def test_key_limit_is_enforced(client: AsyncClient, auth_headers: dict, database):
    for i in range(10):
        await create_key(client, auth_headers, name=f"key {i}")

    response = await client.post("/api-keys", json={"name": "one too many"}, headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["error"] == "KEY_LIMIT_REACHED"
    async with database.session() as session:
        total = (await session.execute(select(func.count()).select_from(ApiKey))).scalar_one()
    assert total == 10


@pytest.mark.asyncio
async def test_concurrent_creates_respect_key_limit(client: AsyncClient, auth_headers: dict, database):
    for i in range(8):
        await create_key(client, auth_headers, name=f"key {i}")

    responses = await asyncio.gather(
        *(client.post("/api-keys", json={"name": f"burst {i}"}, headers=auth_headers) for i in range(6))
    )

    statuses = sorted(r.status_code for r in responses)
    assert statuses == [201, 201, 400, 400, 400, 400]
    assert all(r.json()["error"] == "KEY_LIMIT_REACHED" for r in responses if r.status_code == 400)
    async with database.session() as session:
        total = (await session.execute(select(func.count()).select_from(ApiKey))).scalar_one()
    assert total == 10


@pytest.mark.asyncio
async def test_revoked_keys_still_count_towards_limit(client: AsyncClient, auth_headers: dict):
    ids = [(await create_key(client, auth_headers, name=f"key {i}"))["key_id"] for i in range(10)]
    await client.delete(f"/api-keys/{ids[0]}", headers=auth_headers)

    response = await client.post("/api-keys", json={"name": "replacement"}, headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["error"] == "KEY_LIMIT_REACHED"


@pytest.mark.asyncio
async def test_update_key_applies_only_given_fields(client: AsyncClient, auth_headers: dict, database):
    created = await create_key(client, auth_headers, name="before", description="keep me")

    response = await client.put(
        f"/api-keys/{created['key_id']}",
        json={"name": "after", "rate_limit_per_hour": 10},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.json()["success"] is True

    stored = await load_key(database, created["key_id"])
    assert stored.name == "after"
    assert stored.rate_limit_per_hour == 10
    assert stored.description == "keep me"
    assert stored.is_active is True

    async with database.session() as session:
        entry = (
            await session.execute(
                select(AuditLogEntry).where(AuditLogEntry.action == AuditAction.API_KEY_UPDATED.value)
            )
        ).scalar_one()
    assert entry.details["updates"] == {"name": "after", "rate_limit_per_hour": 10}


@pytest.mark.asyncio
async def test_update_key_without_fields(client: AsyncClient, auth_headers: dict):
    created = await create_key(client, auth_headers)

    response = await client.put(f"/api-keys/{created['key_id']}", json={}, headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["error"] == "NO_UPDATES"


@pytest.mark.asyncio
async def test_update_key_rejects_blank_name(client: AsyncClient, auth_headers: dict):
    created = await create_key(client, auth_headers)

    response = await client.put(f"/api-keys/{created['key_id']}", json={"name": " "}, headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["error"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_unknown_key_is_not_found(client: AsyncClient, auth_headers: dict):
    missing = "00000000-0000-0000-0000-000000000000"

    for method, kwargs in (
        ("GET", {}),
        ("PUT", {"json": {"name": "x"}}),
        ("DELETE", {}),
    ):
        response = await client.request(method, f"/api-keys/{missing}", headers=auth_headers, **kwargs)
        assert response.status_code == 404
        assert response.json()["error"] == "KEY_NOT_FOUND"

    response = await client.get(f"/api-keys/{missing}/usage", headers=auth_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_keys_of_other_users_are_invisible(client: AsyncClient, auth_headers: dict, database):
    created = await create_key(client, auth_headers, name="mine")

    await signup(client, email="other@b.com")
    other = {"Authorization": f"Bearer {await login_token(client, email='other@b.com')}"}

    assert (await client.get("/api-keys", headers=other)).json()["keys"] == []
    for method, kwargs in (
        ("GET", {}),
        ("PUT", {"json": {"name": "stolen"}}),
        ("DELETE", {}),
    ):
        response = await client.request(method, f"/api-keys/{created['key_id']}", headers=other, **kwargs)
        assert response.status_code == 404
        assert response.json()["error"] == "KEY_NOT_FOUND"

    stored = await load_key(database, created["key_id"])
    assert stored.name == "mine"
    assert stored.is_active is True


@pytest.mark.asyncio
async def test_revoke_is_soft_and_blocks_use(client: AsyncClient, auth_headers: dict, api_key: dict):
    assert (await client.get("/api/databases", headers=api_key["headers"])).status_code == 200

    response = await client.delete(f"/api-keys/{api_key['key_id']}", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["success"] is True

    response = await client.get("/api/databases", headers=api_key["headers"])
    assert response.status_code == 401
    assert response.json()["error"] == "API_KEY_NOT_FOUND"

    keys = (await client.get("/api-keys", headers=auth_headers)).json()["keys"]
    assert len(keys) == 1
    assert keys[0]["is_active"] is False


@pytest.mark.asyncio
async def test_deactivated_key_can_be_reactivated(client: AsyncClient, auth_headers: dict, api_key: dict):
    url = f"/api-keys/{api_key['key_id']}"
    await client.put(url, json={"is_active": False}, headers=auth_headers)
    assert (await client.get("/api/databases", headers=api_key["headers"])).status_code == 401

    await client.put(url, json={"is_active": True}, headers=auth_headers)
    assert (await client.get("/api/databases", headers=api_key["headers"])).status_code == 200


@pytest.mark.asyncio
async def test_key_actions_are_audited(client: AsyncClient, auth_headers: dict, database):
    created = await create_key(client, auth_headers, name="audited")
    await client.delete(f"/api-keys/{created['key_id']}", headers=auth_headers)

    async with database.session() as session:
        rows = (
            await session.execute(
                select(AuditLogEntry.action, AuditLogEntry.details)
                .where(AuditLogEntry.action.in_([
                    AuditAction.API_KEY_CREATED.value,
                    AuditAction.API_KEY_REVOKED.value,
                ]))
                .order_by(AuditLogEntry.id)
            )
        ).all()

    assert [r.action for r in rows] == ["API_KEY_CREATED", "API_KEY_REVOKED"]
    assert rows[0].details["key_prefix"] == created["key_prefix"]
    assert created["api_key"] not in str(rows[0].details)


@pytest.mark.asyncio
async def test_usage_statistics(client: AsyncClient, auth_headers: dict, api_key: dict):
    for _ in range(3):
        await client.get("/api/databases", headers=api_key["headers"])
    await client.get("/api/databases/nope", headers=api_key["headers"])

    response = await client.get(f"/api-keys/{api_key['key_id']}/usage", headers=auth_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["key_name"] == "fixture key"
    assert body["total_requests"] == 4
    assert body["period_days"] == 7

    by_endpoint = {row["endpoint"]: row["count"] for row in body["usage"]["by_endpoint"]}
    assert by_endpoint == {"/api/databases": 3, "/api/databases/nope": 1}
    by_status = {row["status_code"]: row["count"] for row in body["usage"]["by_status"]}
    assert by_status == {200: 3, 404: 1}
    assert sum(row["count"] for row in body["usage"]["by_day"]) == 4


@pytest.mark.asyncio
@pytest.mark.parametrize("days", [0, 366])
async def test_usage_statistics_period_bounds(client: AsyncClient, auth_headers: dict, api_key: dict, days: int):
    response = await client.get(f"/api-keys/{api_key['key_id']}/usage?days={days}", headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["error"] == "VALIDATION_ERROR"
