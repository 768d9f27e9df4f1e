"""
Accounts list API — records with their login linkage, newest first.
"""
from __future__ import annotations

import httpx
import pytest
from httpx import ASGITransport

from backend.web import main, provisioning_wiring

pytestmark = pytest.mark.anyio("asyncio")


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=ASGITransport(app=main.app), base_url="http://test")


@pytest.mark.anyio
async def test_list_students_shows_linkage(stores):
    provisioning_wiring.set_provisioner(stores.provisioner)
    result = stores.provisioner.provision(
        email="a@x.com", password="secret1", display_name="A One", role="student", domain_record_id="rec-1"
    )

    async with _client() as client:
        r = await client.get("/api/accounts/student")

    assert r.status_code == 200
    assert r.headers["Cache-Control"] == "private, no-store"
    rows = {row["id"]: row for row in r.json()}
    assert set(rows) == {"rec-1", "rec-2"}
    assert rows["rec-1"] == {
        "id": "rec-1",
        "fullName": "A One",
        "email": "a@x.com",
        "status": "active",
        "userId": result.identity_id,
        "linked": True,
    }
    assert rows["rec-2"]["linked"] is False
    assert rows["rec-2"]["userId"] is None


@pytest.mark.anyio
async def test_list_orders_newest_first(stores):
    provisioning_wiring.set_provisioner(stores.provisioner)
    async with _client() as client:
        r = await client.get("/api/accounts/student")
    # rec-2 was created after rec-1 in the fixture
    assert [row["id"] for row in r.json()] == ["rec-2", "rec-1"]


@pytest.mark.anyio
async def test_list_faculty(stores):
    provisioning_wiring.set_provisioner(stores.provisioner)
    async with _client() as client:
        r = await client.get("/api/accounts/faculty")
    assert [row["id"] for row in r.json()] == ["fac-1"]


@pytest.mark.anyio
async def test_list_invalid_role_is_400(stores):
    provisioning_wiring.set_provisioner(stores.provisioner)
    async with _client() as client:
        r = await client.get("/api/accounts/admin")
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid role: admin"}
