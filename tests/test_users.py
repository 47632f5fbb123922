# tests/test_users.py
import pytest
from httpx import AsyncClient

from app.db.database import AsyncSessionLocal
from app.db.models.enums import SystemRole
from app.exceptions.domain import NotFoundError
from app.services.accounts import grant_system_role
from tests.conftest import create_test_user, get_auth_headers, load_user, create_org


@pytest.mark.asyncio
async def test_read_and_update_profile(client: AsyncClient):
    alice = await create_test_user(email="alice@example.com", name="Alice")

    response = await client.get("/api/v1/users/me", headers=get_auth_headers(alice))
    assert response.status_code == 200
    assert response.json()["name"] == "Alice"

    response = await client.patch(
        "/api/v1/users/me",
        json={"name": "Alice Liddell", "image": "https://cdn.test/alice.png"},
        headers=get_auth_headers(alice)
    )
    assert response.status_code == 200
    assert response.json()["name"] == "Alice Liddell"
    assert response.json()["image"] == "https://cdn.test/alice.png"

    response = await client.patch("/api/v1/users/me", json={"image": "ftp://nope"}, headers=get_auth_headers(alice))
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_profile_update_ignores_role_fields(client: AsyncClient):
    alice = await create_test_user(email="alice@example.com")

    await client.patch(
        "/api/v1/users/me",
        json={"name": "Alice", "system_role": "ADMIN"},
        headers=get_auth_headers(alice)
    )
    assert (await load_user(alice.id)).system_role == SystemRole.USER


@pytest.mark.asyncio
async def test_set_default_organization_requires_membership(client: AsyncClient):
    alice = await create_test_user(email="alice@example.com")
    bob = await create_test_user(email="bob@example.com")
    acme = await create_org(client, alice, name="Acme")
    globex = await create_org(client, alice, name="Globex")
    bobco = await create_org(client, bob, name="Bobco")

    response = await client.put(
        "/api/v1/users/me/default-organization",
        json={"organization_id": globex["id"]},
        headers=get_auth_headers(alice)
    )
    assert response.status_code == 200
    assert response.json()["default_organization_id"] == globex["id"]

    response = await client.put(
        "/api/v1/users/me/default-organization",
        json={"organization_id": bobco["id"]},
        headers=get_auth_headers(alice)
    )
    assert response.status_code == 403
    assert (await load_user(alice.id)).default_organization_id == globex["id"]

    response = await client.get("/api/v1/users/me/organizations", headers=get_auth_headers(alice))
    assert {o["id"] for o in response.json()} == {acme["id"], globex["id"]}


@pytest.mark.asyncio
async def test_admin_console_requires_system_admin(client: AsyncClient):
    alice = await create_test_user(email="alice@example.com")
    sam = await create_test_user(email="sam@support.test", system_role=SystemRole.SUPPORT)

    for user in (alice, sam):
        response = await client.get("/api/v1/admin/users", headers=get_auth_headers(user))
        assert response.status_code == 403
        response = await client.patch(
            f"/api/v1/admin/users/{alice.id}/system-role",
            json={"system_role": "ADMIN"},
            headers=get_auth_headers(user)
        )
        assert response.status_code == 403


@pytest.mark.asyncio
async def test_admin_lists_and_searches_users(client: AsyncClient):
    root = await create_test_user(email="root@support.test", name="Root", system_role=SystemRole.ADMIN)
    await create_test_user(email="alice@example.com", name="Alice")
    await create_test_user(email="bob@example.com", name="Bob")

    response = await client.get("/api/v1/admin/users", params={"size": 2}, headers=get_auth_headers(root))
    assert response.status_code == 200
    page = response.json()
    assert page["total"] == 3
    assert len(page["items"]) == 2
    assert page["has_next"] is True
    assert page["links"]["prev"] is None
    assert "page=2" in page["links"]["next"]
    assert "size=2" in page["links"]["next"]
    assert page["links"]["next"] == page["links"]["last"]

    response = await client.get("/api/v1/admin/users", params={"search": "ALICE"}, headers=get_auth_headers(root))
    assert [u["email"] for u in response.json()["items"]] == ["alice@example.com"]
    assert "search=ALICE" in response.json()["links"]["self"]


@pytest.mark.asyncio
async def test_admin_changes_system_role_but_not_their_own(client: AsyncClient):
    root = await create_test_user(email="root@support.test", system_role=SystemRole.ADMIN)
    alice = await create_test_user(email="alice@example.com")

    response = await client.patch(
        f"/api/v1/admin/users/{alice.id}/system-role",
        json={"system_role": "SUPPORT"},
        headers=get_auth_headers(root)
    )
    assert response.status_code == 200
    assert response.json()["system_role"] == "SUPPORT"

    response = await client.patch(
        f"/api/v1/admin/users/{root.id}/system-role",
        json={"system_role": "USER"},
        headers=get_auth_headers(root)
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "You cannot change your own system role"

    response = await client.patch(
        "/api/v1/admin/users/no-such-user/system-role",
        json={"system_role": "USER"},
        headers=get_auth_headers(root)
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_grant_system_role_for_operators(client: AsyncClient):
    await create_test_user(email="alice@example.com")

    async with AsyncSessionLocal() as db:
        user = await grant_system_role(db, "Alice@Example.com", SystemRole.ADMIN)
    assert user.system_role == SystemRole.ADMIN

    async with AsyncSessionLocal() as db:
        with pytest.raises(NotFoundError):
            await grant_system_role(db, "ghost@example.com")
