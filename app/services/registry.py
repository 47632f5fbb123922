# app/services/registry.py
"""Process-wide collaborators, built once at startup and kept on app.state"""
from dataclasses import dataclass

from fastapi import Request

from app.core.config import settings
from app.db.database import AsyncSessionLocal
from app.integrations.job_queue import JobQueue
from app.integrations.notifications import NotificationSender, build_notification_sender
from app.integrations.uploads import UploadSink, LocalUploadSink
from app.services.bootstrap import register_bootstrap_jobs


@dataclass
class ServiceRegistry:
    notifier: NotificationSender
    job_queue: JobQueue
    upload_sink: UploadSink


def build_services(session_factory=AsyncSessionLocal) -> ServiceRegistry:
    notifier = build_notification_sender()
    job_queue = JobQueue(
        retry_base_delay=settings.JOB_RETRY_BASE_DELAY,
        max_history=settings.JOB_HISTORY_SIZE
    )
    register_bootstrap_jobs(job_queue, session_factory, notifier)
    return ServiceRegistry(
        notifier=notifier,
        job_queue=job_queue,
        upload_sink=LocalUploadSink(),
    )


def get_services(request: Request) -> ServiceRegistry:
    return request.app.state.services
