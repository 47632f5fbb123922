# tests/test_bootstrap.py
import pytest
from httpx import AsyncClient
from sqlalchemy import select, func

from app.auth.security import create_access_token
from app.core.config import settings
from app.db.database import AsyncSessionLocal
from app.db.models import Organization
from app.integrations.job_queue import JobQueue, JobStatus, JobError
from app.services.bootstrap import (
    CREATE_DEFAULT_ORGANIZATION, SEND_WELCOME_EMAIL, create_default_for_user, default_organization_name
)
from tests.conftest import create_test_user, get_auth_headers, load_user, create_org


async def count_owned(user_id: str) -> int:
    async with AsyncSessionLocal() as db:
        return await db.scalar(select(func.count()).select_from(Organization).filter(Organization.owner_id == user_id))


def test_default_organization_name():
    assert default_organization_name("Dana") == "Dana's Team"
    assert default_organization_name("  ") == "My Team"
    assert default_organization_name(None) == "My Team"


@pytest.mark.asyncio
async def test_first_sign_in_provisions_user_and_queues_bootstrap(client: AsyncClient, job_queue, notifier):
    token = create_access_token({"sub": "idp-user-1", "email": "Dana@Example.com", "name": "Dana"})

    response = await client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    me = response.json()
    assert me["id"] == "idp-user-1"
    assert me["email"] == "dana@example.com"
    assert me["system_role"] == "USER"
    assert me["default_organization_id"] is None

    queued = {job.job_type for job in job_queue.jobs.values()}
    assert queued == {CREATE_DEFAULT_ORGANIZATION, SEND_WELCOME_EMAIL}

    await job_queue.drain()

    assert all(job.status == JobStatus.SUCCEEDED for job in job_queue.jobs.values())
    user = await load_user("idp-user-1")
    assert user.default_organization_id is not None
    async with AsyncSessionLocal() as db:
        org = await db.get(Organization, user.default_organization_id)
    assert org.name == "Dana's Team"
    assert org.owner_id == user.id
    assert [w.email for w in notifier.welcomes] == ["dana@example.com"]

    # Later requests resolve the existing row and queue nothing new
    response = await client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {token}"})
    assert response.json()["default_organization_id"] == org.id
    assert len(job_queue.jobs) == 2


@pytest.mark.asyncio
async def test_bootstrap_replay_does_not_create_second_organization(client: AsyncClient):
    dana = await create_test_user(email="dana@example.com", name="Dana")

    async with AsyncSessionLocal() as db:
        first = await create_default_for_user(db, dana.id, dana.name)
    async with AsyncSessionLocal() as db:
        second = await create_default_for_user(db, dana.id, dana.name)

    assert first.id == second.id
    assert await count_owned(dana.id) == 1


@pytest.mark.asyncio
async def test_bootstrap_keeps_default_chosen_meanwhile(client: AsyncClient):
    """A user who already created an organization keeps it as default"""
    dana = await create_test_user(email="dana@example.com", name="Dana")
    org = await create_org(client, dana, name="Handmade")

    async with AsyncSessionLocal() as db:
        result = await create_default_for_user(db, dana.id, dana.name)

    assert result.id == org["id"]
    assert (await load_user(dana.id)).default_organization_id == org["id"]
    assert await count_owned(dana.id) == 1


@pytest.mark.asyncio
async def test_job_retries_then_calls_failure_handler_once():
    queue = JobQueue(retry_base_delay=0)
    calls = []
    failures = []

    async def flaky(payload):
        calls.append(payload)
        raise RuntimeError("store unavailable")

    async def on_failure(job, exc):
        failures.append((job.id, str(exc)))

    queue.register("flaky", flaky, on_failure=on_failure)
    job_id = await queue.enqueue("flaky", {"n": 1}, retries=settings.DEFAULT_ORG_RETRIES)
    await queue.drain()

    job = queue.jobs[job_id]
    assert len(calls) == settings.DEFAULT_ORG_RETRIES + 1
    assert job.attempts == settings.DEFAULT_ORG_RETRIES + 1
    assert job.status == JobStatus.FAILED
    assert failures == [(job_id, "store unavailable")]


@pytest.mark.asyncio
async def test_job_succeeds_after_transient_failure():
    queue = JobQueue(retry_base_delay=0)
    attempts = []

    async def recovers(payload):
        attempts.append(1)
        if len(attempts) < 2:
            raise RuntimeError("transient")

    queue.register("recovers", recovers)
    job_id = await queue.enqueue("recovers", {}, retries=3)
    await queue.drain()

    assert queue.jobs[job_id].status == JobStatus.SUCCEEDED
    assert queue.jobs[job_id].attempts == 2


@pytest.mark.asyncio
async def test_enqueue_deduplicates_by_idempotency_key():
    queue = JobQueue(retry_base_delay=0)

    async def noop(payload):
        return None

    queue.register("noop", noop)
    first = await queue.enqueue("noop", {}, idempotency_key="noop:1")
    second = await queue.enqueue("noop", {}, idempotency_key="noop:1")

    assert first == second
    assert queue.queue.qsize() == 1


@pytest.mark.asyncio
async def test_failed_job_releases_idempotency_key():
    queue = JobQueue(retry_base_delay=0)
    outcomes = [RuntimeError("store unavailable"), None]

    async def once_broken(payload):
        outcome = outcomes.pop(0)
        if outcome:
            raise outcome

    queue.register("once_broken", once_broken)
    first = await queue.enqueue("once_broken", {}, idempotency_key="org:1")
    await queue.drain()
    assert queue.jobs[first].status == JobStatus.FAILED

    second = await queue.enqueue("once_broken", {}, idempotency_key="org:1")
    assert second != first
    await queue.drain()
    assert queue.jobs[second].status == JobStatus.SUCCEEDED

    # Succeeded jobs keep their key
    assert await queue.enqueue("once_broken", {}, idempotency_key="org:1") == second
    assert queue.queue.qsize() == 0


@pytest.mark.asyncio
async def test_finished_jobs_are_evicted_beyond_history():
    queue = JobQueue(retry_base_delay=0, max_history=2)

    async def noop(payload):
        return None

    queue.register("noop", noop)
    ids = [await queue.enqueue("noop", {}, idempotency_key=f"noop:{n}") for n in range(3)]
    await queue.drain()

    assert set(queue.jobs) == set(ids[1:])
    assert await queue.enqueue("noop", {}, idempotency_key="noop:0") not in ids
    assert await queue.enqueue("noop", {}, idempotency_key="noop:2") == ids[2]


@pytest.mark.asyncio
async def test_unknown_job_type_is_rejected():
    queue = JobQueue()
    with pytest.raises(JobError):
        await queue.enqueue("missing", {})


@pytest.mark.asyncio
async def test_workers_process_jobs_in_background():
    queue = JobQueue(retry_base_delay=0)
    done = []

    async def record(payload):
        done.append(payload["n"])

    queue.register("record", record)
    await queue.start(num_workers=2)
    try:
        for n in range(3):
            await queue.enqueue("record", {"n": n})
        await queue.queue.join()
    finally:
        await queue.stop()

    assert sorted(done) == [0, 1, 2]


@pytest.mark.asyncio
async def test_welcome_failure_does_not_block_sign_in(client: AsyncClient, job_queue, notifier):
    notifier.fail = True
    token = create_access_token({"sub": "idp-user-2", "email": "eve@example.com", "name": "Eve"})

    response = await client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200

    await job_queue.drain()

    statuses = {job.job_type: job.status for job in job_queue.jobs.values()}
    assert statuses[CREATE_DEFAULT_ORGANIZATION] == JobStatus.SUCCEEDED
    assert statuses[SEND_WELCOME_EMAIL] == JobStatus.FAILED
    assert len(notifier.welcomes) == settings.DEFAULT_ORG_RETRIES + 1


@pytest.mark.asyncio
async def test_workflow_endpoint_requires_secret(client: AsyncClient):
    dana = await create_test_user(email="dana@example.com", name="Dana")

    response = await client.post(
        "/api/v1/workflows/create-default-organization",
        json={"user_id": dana.id, "name": "Dana"},
        headers={"X-Workflow-Secret": "wrong"}
    )
    assert response.status_code == 401

    headers = {"X-Workflow-Secret": settings.WORKFLOW_SECRET.get_secret_value()}
    first = await client.post(
        "/api/v1/workflows/create-default-organization",
        json={"user_id": dana.id, "name": "Dana"},
        headers=headers
    )
    assert first.status_code == 200
    assert first.json()["name"] == "Dana's Team"

    second = await client.post(
        "/api/v1/workflows/create-default-organization",
        json={"user_id": dana.id},
        headers=headers
    )
    assert second.json()["id"] == first.json()["id"]

    response = await client.post(
        "/api/v1/workflows/create-default-organization",
        json={"user_id": "no-such-user"},
        headers=headers
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_workflow_endpoint_rejects_everything_without_configured_secret(client: AsyncClient, monkeypatch):
    monkeypatch.setattr(settings, "WORKFLOW_SECRET", None)
    dana = await create_test_user(email="dana@example.com")

    for secret in ("change-me", "test-workflow-secret", ""):
        response = await client.post(
            "/api/v1/workflows/create-default-organization",
            json={"user_id": dana.id},
            headers={"X-Workflow-Secret": secret}
        )
        assert response.status_code == 401
    assert (await load_user(dana.id)).default_organization_id is None


@pytest.mark.asyncio
async def test_default_organization_slug_fits_for_long_names(client: AsyncClient):
    dana = await create_test_user(email="dana@example.com")

    response = await client.post(
        "/api/v1/workflows/create-default-organization",
        json={"user_id": dana.id, "name": "D" * 120},
        headers={"X-Workflow-Secret": settings.WORKFLOW_SECRET.get_secret_value()}
    )
    assert response.status_code == 200
    assert len(response.json()["slug"]) <= 64
    assert response.json()["slug"].startswith("d" * 50)


@pytest.mark.asyncio
async def test_user_token_is_not_a_workflow_secret(client: AsyncClient):
    dana = await create_test_user(email="dana@example.com")
    response = await client.post(
        "/api/v1/workflows/create-default-organization",
        json={"user_id": dana.id},
        headers=get_auth_headers(dana)
    )
    assert response.status_code == 401
