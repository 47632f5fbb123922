# app/integrations/notifications.py
"""Outbound email delivery for invitations and welcome messages"""
import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol

import aiohttp
from loguru import logger

from app.core.config import settings
from app.utils.helpers import mask_sensitive_data


@dataclass
class DeliveryResult:
    success: bool
    error: Optional[str] = None


@dataclass
class InvitationNotice:
    recipient_email: str
    inviter_name: Optional[str]
    inviter_email: Optional[str]
    organization_name: str
    organization_logo: Optional[str]
    invitation_token: str
    role: str
    expires_at: datetime

    @property
    def invitation_url(self) -> str:
        return f"{settings.APP_URL.rstrip('/')}/invitation/{self.invitation_token}"


@dataclass
class WelcomeNotice:
    user_id: str
    email: str
    name: Optional[str] = None


class NotificationSender(Protocol):
    async def send_invitation(self, notice: InvitationNotice) -> DeliveryResult:
        ...

    async def send_welcome(self, notice: WelcomeNotice) -> DeliveryResult:
        ...


def _invitation_text(notice: InvitationNotice) -> str:
    inviter = notice.inviter_name or notice.inviter_email or "A teammate"
    return (
        f"{inviter} has invited you to join {notice.organization_name} as {notice.role.lower()}.\n\n"
        f"Accept the invitation: {notice.invitation_url}\n\n"
        f"This invitation expires on {notice.expires_at:%Y-%m-%d %H:%M} UTC."
    )


def _welcome_text(notice: WelcomeNotice) -> str:
    greeting = f"Hi {notice.name}," if notice.name else "Hi there,"
    return f"{greeting}\n\nWelcome aboard! Get started at {settings.APP_URL}."


class ResendNotificationSender:
    """Delivers email through the Resend REST API"""

    def __init__(
            self,
            api_key: str,
            from_address: str = settings.EMAIL_FROM_ADDRESS,
            api_url: str = settings.RESEND_API_URL,
            timeout_seconds: float = settings.EMAIL_TIMEOUT_SECONDS
    ):
        self.api_key = api_key
        self.from_address = from_address
        self.api_url = api_url
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    async def send_invitation(self, notice: InvitationNotice) -> DeliveryResult:
        return await self._send(
            to=notice.recipient_email,
            subject=f"Join {notice.organization_name}",
            text=_invitation_text(notice),
        )

    async def send_welcome(self, notice: WelcomeNotice) -> DeliveryResult:
        return await self._send(
            to=notice.email,
            subject="Welcome to TenantDesk!",
            text=_welcome_text(notice),
        )

    async def _send(self, to: str, subject: str, text: str) -> DeliveryResult:
        payload = {
            "from": self.from_address,
            "to": [to],
            "subject": subject,
            "text": text,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(self.api_url, json=payload, headers=headers) as response:
                    if response.status >= 400:
                        body = await response.text()
                        logger.warning(
                            f"Resend rejected email to {mask_sensitive_data(to)}: {response.status} {body[:200]}"
                        )
                        return DeliveryResult(success=False, error=f"HTTP {response.status}: {body[:200]}")
            logger.info(f"Email sent to {mask_sensitive_data(to)}: {subject}")
            return DeliveryResult(success=True)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Email delivery to {mask_sensitive_data(to)} failed: {e}")
            return DeliveryResult(success=False, error=str(e) or type(e).__name__)


class LogNotificationSender:
    """Writes notifications to the log instead of sending them"""

    async def send_invitation(self, notice: InvitationNotice) -> DeliveryResult:
        link = notice.invitation_url.replace(notice.invitation_token, mask_sensitive_data(notice.invitation_token))
        logger.info(
            f"Invitation email for {mask_sensitive_data(notice.recipient_email)} to {notice.organization_name}: {link}"
        )
        return DeliveryResult(success=True)

    async def send_welcome(self, notice: WelcomeNotice) -> DeliveryResult:
        logger.info(f"Welcome email for {mask_sensitive_data(notice.email)}")
        return DeliveryResult(success=True)


def build_notification_sender() -> NotificationSender:
    if settings.RESEND_API_KEY is not None:
        return ResendNotificationSender(api_key=settings.RESEND_API_KEY.get_secret_value())
    logger.info("RESEND_API_KEY not set - notifications will only be logged")
    return LogNotificationSender()
