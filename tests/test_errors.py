# tests/test_errors.py
from datetime import timedelta

import pytest
from httpx import AsyncClient
from loguru import logger
from pydantic import SecretStr

from app.core.config import settings
from app.exceptions.domain import InternalError, NotFoundError, service_operation
from app.integrations.notifications import (
    InvitationNotice, LogNotificationSender, ResendNotificationSender, WelcomeNotice, build_notification_sender
)
from app.utils.helpers import utc_now
from tests.conftest import create_test_user, get_auth_headers


@service_operation("explode")
async def explode():
    raise RuntimeError("disk on fire")


@service_operation("missing")
async def missing():
    raise NotFoundError("Nothing here")


@pytest.mark.asyncio
async def test_service_operation_wraps_unexpected_errors():
    with pytest.raises(InternalError) as exc_info:
        await explode()
    assert exc_info.value.status_code == 500
    assert exc_info.value.kind == "Internal"
    assert isinstance(exc_info.value.__cause__, RuntimeError)


@pytest.mark.asyncio
async def test_service_operation_passes_domain_errors_through():
    with pytest.raises(NotFoundError):
        await missing()


@pytest.mark.asyncio
async def test_error_body_carries_kind_and_trace_id(client: AsyncClient):
    alice = await create_test_user(email="alice@example.com")

    response = await client.get("/api/v1/organizations/nope", headers=get_auth_headers(alice))

    assert response.status_code == 404
    body = response.json()
    assert body["kind"] == "NotFound"
    assert body["trace_id"] == response.headers["x-trace-id"]


@pytest.mark.asyncio
async def test_unauthenticated_response_kind(client: AsyncClient):
    response = await client.get("/api/v1/users/me")
    assert response.status_code == 401
    assert response.json()["kind"] == "Unauthenticated"


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_notification_sender_selection(monkeypatch):
    monkeypatch.setattr(settings, "RESEND_API_KEY", None)
    assert isinstance(build_notification_sender(), LogNotificationSender)

    monkeypatch.setattr(settings, "RESEND_API_KEY", SecretStr("re_test"))
    sender = build_notification_sender()
    assert isinstance(sender, ResendNotificationSender)
    assert sender.api_key == "re_test"


@pytest.mark.asyncio
async def test_log_sender_always_succeeds():
    result = await LogNotificationSender().send_welcome(WelcomeNotice(user_id="u1", email="dana@example.com", name="Dana"))
    assert result.success


@pytest.mark.asyncio
async def test_log_sender_masks_recipient_and_token():
    messages = []
    sink_id = logger.add(messages.append, level="INFO", format="{message}")
    notice = InvitationNotice(
        recipient_email="bob@example.com",
        inviter_name="Alice",
        inviter_email="alice@example.com",
        organization_name="Acme",
        organization_logo=None,
        invitation_token="s3cr3t-invitation-token",
        role="MEMBER",
        expires_at=utc_now() + timedelta(days=7)
    )
    try:
        sender = LogNotificationSender()
        await sender.send_invitation(notice)
        await sender.send_welcome(WelcomeNotice(user_id="u1", email="dana@example.com", name="Dana"))
    finally:
        logger.remove(sink_id)

    logged = "".join(messages)
    assert "Acme" in logged
    assert "s3cr3t-invitation-token" not in logged
    assert "bob@example.com" not in logged
    assert "dana@example.com" not in logged
