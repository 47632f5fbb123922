"""
Pytest configuration and fixtures for TenantDesk API tests
"""
import os

# Settings are read at import time, so the environment must be ready first
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-identity-provider-tokens"
os.environ["ENVIRONMENT"] = "test"
os.environ["ENABLE_JSON_LOGGING"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["RATE_LIMIT_ENABLED"] = "true"
os.environ["RATE_LIMIT_STORAGE_URI"] = "memory://"
os.environ["WORKFLOW_SECRET"] = "test-workflow-secret"
os.environ.pop("RESEND_API_KEY", None)

import pytest
from typing import AsyncGenerator, List, Optional
from httpx import AsyncClient, ASGITransport

from app.main import app
from app.auth.security import create_access_token
from app.core.rate_limit import rate_limiter
from app.db.database import Base, engine, AsyncSessionLocal
from app.db import models  # noqa: F401
from app.db.crud import user as user_crud
from app.db.models import User
from app.db.models.enums import SystemRole
from app.integrations.job_queue import JobQueue
from app.integrations.notifications import DeliveryResult, InvitationNotice, WelcomeNotice
from app.integrations.uploads import StoredFile
from app.services.bootstrap import register_bootstrap_jobs
from app.services.registry import ServiceRegistry


class FakeNotificationSender:
    """Records notices; set ``fail`` to simulate a delivery outage"""

    def __init__(self):
        self.invitations: List[InvitationNotice] = []
        self.welcomes: List[WelcomeNotice] = []
        self.fail = False

    async def send_invitation(self, notice: InvitationNotice) -> DeliveryResult:
        self.invitations.append(notice)
        if self.fail:
            return DeliveryResult(success=False, error="provider unavailable")
        return DeliveryResult(success=True)

    async def send_welcome(self, notice: WelcomeNotice) -> DeliveryResult:
        self.welcomes.append(notice)
        if self.fail:
            return DeliveryResult(success=False, error="provider unavailable")
        return DeliveryResult(success=True)


class FakeUploadSink:
    def __init__(self):
        self.stored = []

    async def store(self, file_name: str, content_type: str, data: bytes) -> StoredFile:
        self.stored.append((file_name, content_type, data))
        return StoredFile(
            url=f"https://files.test/{len(self.stored)}/{file_name}",
            content_type=content_type,
            size=len(data)
        )


@pytest.fixture(scope="function")
async def database() -> AsyncGenerator[None, None]:
    """Fresh schema for each test"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    # Each test runs on its own event loop; drop the pooled connection with it
    await engine.dispose()


@pytest.fixture
def notifier() -> FakeNotificationSender:
    return FakeNotificationSender()


@pytest.fixture
def upload_sink() -> FakeUploadSink:
    return FakeUploadSink()


@pytest.fixture
def job_queue(notifier) -> JobQueue:
    """Workers are not started; tests run queued jobs with ``drain()``"""
    queue = JobQueue(retry_base_delay=0)
    register_bootstrap_jobs(queue, AsyncSessionLocal, notifier)
    return queue


@pytest.fixture
def services(notifier, job_queue, upload_sink) -> ServiceRegistry:
    return ServiceRegistry(notifier=notifier, job_queue=job_queue, upload_sink=upload_sink)


@pytest.fixture(scope="function")
async def client(database, services) -> AsyncGenerator[AsyncClient, None]:
    """Test client wired to the fake collaborators"""
    app.state.services = services
    rate_limiter.reset()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.state.services = None


async def create_test_user(
        email: str = "test@example.com",
        name: Optional[str] = "Test User",
        system_role: SystemRole = SystemRole.USER
) -> User:
    """Insert a user row directly, as if they had signed in before"""
    async with AsyncSessionLocal() as db:
        user = await user_crud.create_user(db, {"email": email, "name": name, "system_role": system_role})
        await db.commit()
        return user


def get_auth_headers(user: User, organization_id: Optional[str] = None) -> dict:
    """Bearer token in the identity provider's format"""
    token = create_access_token({"sub": user.id, "email": user.email, "name": user.name})
    headers = {"Authorization": f"Bearer {token}"}
    if organization_id:
        headers["X-Organization-Id"] = organization_id
    return headers


async def load_user(user_id: str) -> Optional[User]:
    async with AsyncSessionLocal() as db:
        return await user_crud.get_user_by_id(db, user_id)


async def create_org(client: AsyncClient, owner: User, name: str = "Acme", **extra) -> dict:
    response = await client.post(
        "/api/v1/organizations/",
        json={"name": name, **extra},
        headers=get_auth_headers(owner)
    )
    assert response.status_code == 201, response.text
    return response.json()


async def add_member(client: AsyncClient, owner: User, org_id: str, user: User, role: str = "MEMBER") -> None:
    """Invite ``user`` and accept on their behalf"""
    response = await client.post(
        f"/api/v1/organizations/{org_id}/invitations",
        json={"email": user.email, "role": role},
        headers=get_auth_headers(owner)
    )
    assert response.status_code == 201, response.text
    token = response.json()["token"]

    response = await client.post(f"/api/v1/invitations/{token}/accept", headers=get_auth_headers(user))
    assert response.status_code == 200, response.text
