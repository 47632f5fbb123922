# tests/test_organizations.py
import re

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from app.db.crud import organization as org_crud
from app.db.database import AsyncSessionLocal
from app.db.models import Organization, UserOrganization
from app.db.models.enums import OrganizationRole
from app.utils.helpers import slugify
from tests.conftest import create_test_user, get_auth_headers, load_user, create_org, add_member


@pytest.mark.asyncio
async def test_create_organization_generates_slug_and_owner_membership(client: AsyncClient):
    """Creating without a slug derives one from the name and makes the creator owner"""
    alice = await create_test_user(email="alice@example.com", name="Alice")

    org = await create_org(client, alice, name="Acme")

    assert re.fullmatch(r"acme-[a-z0-9]{5}", org["slug"])
    assert org["owner_id"] == alice.id

    refreshed = await load_user(alice.id)
    assert refreshed.default_organization_id == org["id"]

    async with AsyncSessionLocal() as db:
        result = await db.execute(
            select(UserOrganization).filter(UserOrganization.organization_id == org["id"])
        )
        memberships = list(result.scalars().all())
    assert len(memberships) == 1
    assert memberships[0].role == OrganizationRole.OWNER
    assert memberships[0].user_id == alice.id


@pytest.mark.asyncio
async def test_second_organization_keeps_existing_default(client: AsyncClient):
    alice = await create_test_user(email="alice@example.com", name="Alice")
    first = await create_org(client, alice, name="Acme")
    await create_org(client, alice, name="Globex")

    refreshed = await load_user(alice.id)
    assert refreshed.default_organization_id == first["id"]


@pytest.mark.asyncio
async def test_explicit_slug_collision_is_conflict(client: AsyncClient):
    alice = await create_test_user(email="alice@example.com")
    await create_org(client, alice, name="Acme", slug="acme-team")

    response = await client.post(
        "/api/v1/organizations/",
        json={"name": "Acme Again", "slug": "acme-team"},
        headers=get_auth_headers(alice)
    )
    assert response.status_code == 409
    assert response.json()["kind"] == "Conflict"


@pytest.mark.asyncio
async def test_generated_slug_retries_after_collision(client: AsyncClient, monkeypatch):
    suffixes = iter(["aaaaa", "aaaaa", "bbbbb"])
    monkeypatch.setattr("app.services.organizations.random_suffix", lambda length=5: next(suffixes))
    alice = await create_test_user(email="alice@example.com")

    first = await create_org(client, alice, name="Acme")
    second = await create_org(client, alice, name="Acme")

    assert first["slug"] == "acme-aaaaa"
    assert second["slug"] == "acme-bbbbb"


@pytest.mark.asyncio
async def test_generated_slug_gives_up_after_max_attempts(client: AsyncClient, monkeypatch):
    monkeypatch.setattr("app.services.organizations.random_suffix", lambda length=5: "aaaaa")
    alice = await create_test_user(email="alice@example.com")
    await create_org(client, alice, name="Acme")

    response = await client.post("/api/v1/organizations/", json={"name": "Acme"}, headers=get_auth_headers(alice))
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_generated_slug_fits_column_for_long_names(client: AsyncClient):
    alice = await create_test_user(email="alice@example.com")

    org = await create_org(client, alice, name="A" * 120)

    assert len(org["slug"]) <= Organization.__table__.c.slug.type.length
    assert re.fullmatch(r"a{58}-[a-z0-9]{5}", org["slug"])


def test_slugify_truncates_without_trailing_hyphen():
    assert slugify("x" * 57 + " " + "y" * 10, max_length=58) == "x" * 57
    assert slugify("Acme Corp!", max_length=58) == "acme-corp"
    assert slugify("!!!", max_length=58) == "org"


@pytest.mark.asyncio
async def test_slug_taken_between_check_and_insert_is_conflict(client: AsyncClient, monkeypatch):
    """A concurrent insert of the same slug surfaces as Conflict, not a server error"""
    alice = await create_test_user(email="alice@example.com")
    await create_org(client, alice, name="Acme", slug="acme-team")

    async def slug_never_exists(db, slug):
        return False

    monkeypatch.setattr(org_crud, "slug_exists", slug_never_exists)
    response = await client.post(
        "/api/v1/organizations/",
        json={"name": "Acme Again", "slug": "acme-team"},
        headers=get_auth_headers(alice)
    )

    assert response.status_code == 409
    assert response.json()["kind"] == "Conflict"
    async with AsyncSessionLocal() as db:
        result = await db.execute(select(Organization).filter(Organization.slug == "acme-team"))
        assert len(result.scalars().all()) == 1


@pytest.mark.asyncio
async def test_invalid_input_lists_failing_fields(client: AsyncClient):
    alice = await create_test_user(email="alice@example.com")

    response = await client.post(
        "/api/v1/organizations/",
        json={"name": "A", "slug": "Not Valid!"},
        headers=get_auth_headers(alice)
    )

    assert response.status_code == 400
    body = response.json()
    assert body["kind"] == "BadRequest"
    fields = {e["field"] for e in body["errors"]}
    assert {"name", "slug"} <= fields


@pytest.mark.asyncio
async def test_requests_without_token_are_unauthenticated(client: AsyncClient):
    response = await client.get("/api/v1/organizations/")
    assert response.status_code == 401
    assert response.json()["kind"] == "Unauthenticated"

    response = await client.get(
        "/api/v1/organizations/",
        headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_non_members_cannot_read_organization(client: AsyncClient):
    alice = await create_test_user(email="alice@example.com")
    mallory = await create_test_user(email="mallory@example.com")
    org = await create_org(client, alice)

    response = await client.get(f"/api/v1/organizations/{org['id']}", headers=get_auth_headers(mallory))
    assert response.status_code == 403

    response = await client.get(f"/api/v1/organizations/by-slug/{org['slug']}", headers=get_auth_headers(mallory))
    assert response.status_code == 403

    response = await client.get(f"/api/v1/organizations/{org['id']}/members", headers=get_auth_headers(mallory))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_unknown_organization_is_not_found(client: AsyncClient):
    alice = await create_test_user(email="alice@example.com")
    response = await client.get(
        "/api/v1/organizations/00000000-0000-0000-0000-000000000000",
        headers=get_auth_headers(alice)
    )
    assert response.status_code == 404
    assert response.json()["kind"] == "NotFound"


@pytest.mark.asyncio
async def test_header_and_path_organization_must_agree(client: AsyncClient):
    alice = await create_test_user(email="alice@example.com")
    acme = await create_org(client, alice, name="Acme")
    globex = await create_org(client, alice, name="Globex")

    response = await client.get(
        f"/api/v1/organizations/{acme['id']}",
        headers=get_auth_headers(alice, organization_id=globex["id"])
    )
    assert response.status_code == 400

    response = await client.get(
        f"/api/v1/organizations/{acme['id']}",
        headers=get_auth_headers(alice, organization_id=acme["id"])
    )
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_update_organization_requires_admin_or_owner(client: AsyncClient):
    alice = await create_test_user(email="alice@example.com")
    bob = await create_test_user(email="bob@example.com")
    erin = await create_test_user(email="erin@example.com")
    org = await create_org(client, alice)
    await add_member(client, alice, org["id"], bob, role="MEMBER")
    await add_member(client, alice, org["id"], erin, role="ADMIN")

    response = await client.patch(
        f"/api/v1/organizations/{org['id']}",
        json={"name": "Renamed"},
        headers=get_auth_headers(bob)
    )
    assert response.status_code == 403

    response = await client.patch(
        f"/api/v1/organizations/{org['id']}",
        json={"name": "Renamed", "billing_email": "billing@example.com"},
        headers=get_auth_headers(erin)
    )
    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "Renamed"
    assert data["billing_email"] == "billing@example.com"
    assert data["slug"] == org["slug"]


@pytest.mark.asyncio
async def test_only_owner_can_change_roles(client: AsyncClient):
    alice = await create_test_user(email="alice@example.com")
    bob = await create_test_user(email="bob@example.com")
    erin = await create_test_user(email="erin@example.com")
    org = await create_org(client, alice)
    await add_member(client, alice, org["id"], bob, role="MEMBER")
    await add_member(client, alice, org["id"], erin, role="ADMIN")

    response = await client.patch(
        f"/api/v1/organizations/{org['id']}/members/{bob.id}",
        json={"role": "ADMIN"},
        headers=get_auth_headers(erin)
    )
    assert response.status_code == 403
    assert response.json()["detail"] == "Only the organization owner can change user roles"

    response = await client.patch(
        f"/api/v1/organizations/{org['id']}/members/{bob.id}",
        json={"role": "ADMIN"},
        headers=get_auth_headers(alice)
    )
    assert response.status_code == 200
    assert response.json()["role"] == "ADMIN"


@pytest.mark.asyncio
async def test_owner_role_is_never_reassigned(client: AsyncClient):
    alice = await create_test_user(email="alice@example.com")
    bob = await create_test_user(email="bob@example.com")
    org = await create_org(client, alice)
    await add_member(client, alice, org["id"], bob)

    response = await client.patch(
        f"/api/v1/organizations/{org['id']}/members/{alice.id}",
        json={"role": "MEMBER"},
        headers=get_auth_headers(alice)
    )
    assert response.status_code == 403

    response = await client.patch(
        f"/api/v1/organizations/{org['id']}/members/{bob.id}",
        json={"role": "OWNER"},
        headers=get_auth_headers(alice)
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_member_removal_rules(client: AsyncClient):
    alice = await create_test_user(email="alice@example.com")
    bob = await create_test_user(email="bob@example.com")
    carol = await create_test_user(email="carol@example.com")
    org = await create_org(client, alice)
    await add_member(client, alice, org["id"], bob)
    await add_member(client, alice, org["id"], carol)

    # Plain members cannot remove others
    response = await client.delete(
        f"/api/v1/organizations/{org['id']}/members/{carol.id}",
        headers=get_auth_headers(bob)
    )
    assert response.status_code == 403

    # Nobody removes the owner
    response = await client.delete(
        f"/api/v1/organizations/{org['id']}/members/{alice.id}",
        headers=get_auth_headers(alice)
    )
    assert response.status_code == 403

    # Self-leave
    response = await client.delete(
        f"/api/v1/organizations/{org['id']}/members/{bob.id}",
        headers=get_auth_headers(bob)
    )
    assert response.status_code == 204

    response = await client.get(f"/api/v1/organizations/{org['id']}/members", headers=get_auth_headers(alice))
    assert {m["user_id"] for m in response.json()} == {alice.id, carol.id}


@pytest.mark.asyncio
async def test_removal_moves_default_to_remaining_membership(client: AsyncClient):
    alice = await create_test_user(email="alice@example.com")
    bob = await create_test_user(email="bob@example.com")
    acme = await create_org(client, alice, name="Acme")
    globex = await create_org(client, alice, name="Globex")
    await add_member(client, alice, acme["id"], bob)
    await add_member(client, alice, globex["id"], bob)
    assert (await load_user(bob.id)).default_organization_id == acme["id"]

    response = await client.delete(
        f"/api/v1/organizations/{acme['id']}/members/{bob.id}",
        headers=get_auth_headers(alice)
    )
    assert response.status_code == 204
    assert (await load_user(bob.id)).default_organization_id == globex["id"]


@pytest.mark.asyncio
async def test_delete_organization_owner_only_and_clears_defaults(client: AsyncClient):
    alice = await create_test_user(email="alice@example.com")
    erin = await create_test_user(email="erin@example.com")
    org = await create_org(client, alice)
    await add_member(client, alice, org["id"], erin, role="ADMIN")

    response = await client.delete(f"/api/v1/organizations/{org['id']}", headers=get_auth_headers(erin))
    assert response.status_code == 403

    response = await client.delete(f"/api/v1/organizations/{org['id']}", headers=get_auth_headers(alice))
    assert response.status_code == 204

    assert (await load_user(alice.id)).default_organization_id is None
    assert (await load_user(erin.id)).default_organization_id is None

    response = await client.get(f"/api/v1/organizations/{org['id']}", headers=get_auth_headers(alice))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_list_organizations_includes_role(client: AsyncClient):
    alice = await create_test_user(email="alice@example.com")
    bob = await create_test_user(email="bob@example.com")
    acme = await create_org(client, alice, name="Acme")
    await create_org(client, bob, name="Bobco")
    await add_member(client, alice, acme["id"], bob, role="ADMIN")

    response = await client.get("/api/v1/organizations/", headers=get_auth_headers(bob))
    assert response.status_code == 200
    roles = {o["name"]: o["role"] for o in response.json()}
    assert roles == {"Acme": "ADMIN", "Bobco": "OWNER"}
