"""API key and scope enforcement tests."""
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from app.models.api_key import ApiScope


@pytest.mark.anyio
async def test_unknown_key_rejected(client):
    response = await client.get("/payments/my-payments", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "UNAUTHORIZED"


@pytest.mark.anyio
async def test_x_api_key_header_accepted(client, make_api_key, customer):
    token = f"customer-{uuid4().hex}"
    make_api_key(token, scope=ApiScope.customer, user=customer)

    response = await client.get("/payments/my-payments", headers={"X-API-Key": token})
    assert response.status_code == 200


@pytest.mark.anyio
async def test_inactive_key_rejected(client, make_api_key, customer):
    token = f"inactive-{uuid4().hex}"
    make_api_key(token, scope=ApiScope.customer, user=customer, is_active=False)

    response = await client.get("/payments/my-payments", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


@pytest.mark.anyio
async def test_expired_key_rejected(client, db_session, make_api_key, customer):
    token = f"expired-{uuid4().hex}"
    api_key = make_api_key(token, scope=ApiScope.customer, user=customer)
    api_key.expires_at = datetime.now(UTC) - timedelta(minutes=1)
    db_session.commit()

    response = await client.get("/payments/my-payments", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


@pytest.mark.anyio
async def test_customer_key_without_user_forbidden(client, make_api_key):
    token = f"orphan-{uuid4().hex}"
    make_api_key(token, scope=ApiScope.customer)

    response = await client.get("/payments/my-payments", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "USER_NOT_FOUND"


@pytest.mark.anyio
async def test_customer_cannot_read_admin_stats(client, customer_headers):
    response = await client.get("/admin/payments/stats", headers=customer_headers)
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "INSUFFICIENT_SCOPE"


@pytest.mark.anyio
async def test_last_used_at_recorded(client, db_session, make_api_key, customer):
    token = f"tracked-{uuid4().hex}"
    api_key = make_api_key(token, scope=ApiScope.customer, user=customer)

    await client.get("/payments/my-payments", headers={"Authorization": f"Bearer {token}"})

    db_session.refresh(api_key)
    assert api_key.last_used_at is not None
