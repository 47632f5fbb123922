# app/integrations/job_queue.py
"""In-process background job queue with bounded retries"""
import asyncio
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from loguru import logger

from app.core import tracing
from app.utils.helpers import utc_now


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


JobHandler = Callable[[Dict[str, Any]], Awaitable[Any]]
FailureHandler = Callable[["Job", BaseException], Awaitable[None]]


@dataclass
class Job:
    job_type: str
    payload: Dict[str, Any]
    retries: int = 0
    idempotency_key: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: JobStatus = JobStatus.PENDING
    attempts: int = 0
    last_error: Optional[str] = None
    trace_id: str = "no-trace"
    created_at: datetime = field(default_factory=utc_now)

    @property
    def max_attempts(self) -> int:
        """The first run plus ``retries`` retries"""
        return self.retries + 1


class JobError(Exception):
    """Job processing error"""
    pass


class JobQueue:
    """
    Runs registered handlers for enqueued jobs on a pool of asyncio workers.

    A failed attempt is retried after ``retry_base_delay * 2 ** (attempt - 1)``
    seconds until ``retries`` retries are used up; the job type's failure
    handler is then called once.

    Only the last ``max_history`` finished jobs stay in ``jobs``. A failed
    job releases its idempotency key at once so the same work can be queued
    again.
    """

    def __init__(self, retry_base_delay: float = 2.0, max_retry_delay: float = 300.0, max_history: int = 1000):
        self.retry_base_delay = retry_base_delay
        self.max_retry_delay = max_retry_delay
        self.max_history = max_history
        self.queue: asyncio.Queue = asyncio.Queue()
        self.jobs: Dict[str, Job] = {}
        self.running = False
        self.workers: List[asyncio.Task] = []
        self._handlers: Dict[str, JobHandler] = {}
        self._failure_handlers: Dict[str, FailureHandler] = {}
        self._keys: Dict[str, str] = {}
        self._finished: deque = deque()

    def register(self, job_type: str, handler: JobHandler, on_failure: Optional[FailureHandler] = None):
        self._handlers[job_type] = handler
        if on_failure is not None:
            self._failure_handlers[job_type] = on_failure

    async def start(self, num_workers: int = 2):
        """Start job workers"""
        if self.running:
            return

        self.running = True
        for i in range(num_workers):
            self.workers.append(asyncio.create_task(self._worker(f"job-worker-{i}")))

        logger.info(f"Job queue started with {num_workers} workers")

    async def stop(self):
        """Stop job workers; queued jobs that have not started are dropped"""
        self.running = False

        for worker in self.workers:
            worker.cancel()

        await asyncio.gather(*self.workers, return_exceptions=True)
        self.workers.clear()

        logger.info("Job queue stopped")

    async def enqueue(
            self,
            job_type: str,
            payload: Dict[str, Any],
            *,
            retries: int = 0,
            idempotency_key: Optional[str] = None
    ) -> str:
        """Queue a job and return its id; a repeated idempotency key returns the first job's id"""
        if job_type not in self._handlers:
            raise JobError(f"No handler registered for job type '{job_type}'")

        if idempotency_key and idempotency_key in self._keys:
            existing_id = self._keys[idempotency_key]
            logger.debug(f"Duplicate job {job_type} ignored for key {idempotency_key}")
            return existing_id

        job = Job(
            job_type=job_type,
            payload=payload,
            retries=retries,
            idempotency_key=idempotency_key,
            trace_id=tracing.get_current_trace_id()
        )
        self.jobs[job.id] = job
        if idempotency_key:
            self._keys[idempotency_key] = job.id

        await self.queue.put(job)
        tracing.info(f"Job queued: {job_type}", job_id=job.id, retries=retries)
        return job.id

    async def drain(self) -> None:
        """Run every queued job inline until the queue is empty"""
        while not self.queue.empty():
            job = self.queue.get_nowait()
            try:
                await self.run_job(job)
            finally:
                self.queue.task_done()

    async def run_job(self, job: Job) -> Job:
        """Execute a job through all of its attempts"""
        handler = self._handlers[job.job_type]
        tracing.set_trace_context(job.trace_id, tracing.generate_span_id())

        while job.attempts < job.max_attempts:
            job.attempts += 1
            job.status = JobStatus.RUNNING
            try:
                await handler(job.payload)
                job.status = JobStatus.SUCCEEDED
                job.last_error = None
                tracing.info(f"Job succeeded: {job.job_type}", job_id=job.id, attempts=job.attempts)
                self._retire(job)
                return job
            except Exception as e:
                job.last_error = str(e) or type(e).__name__
                if job.attempts >= job.max_attempts:
                    job.status = JobStatus.FAILED
                    await self._handle_failure(job, e)
                    self._retire(job)
                    return job

                delay = min(self.retry_base_delay * (2 ** (job.attempts - 1)), self.max_retry_delay)
                job.status = JobStatus.RETRYING
                tracing.warning(
                    f"Job attempt failed, retrying in {delay}s: {job.job_type}",
                    job_id=job.id,
                    attempt=job.attempts,
                    error=job.last_error
                )
                if delay > 0:
                    await asyncio.sleep(delay)
        return job

    def _retire(self, job: Job) -> None:
        if job.status == JobStatus.FAILED:
            self._release_key(job)

        self._finished.append(job.id)
        while len(self._finished) > self.max_history:
            evicted = self.jobs.pop(self._finished.popleft(), None)
            if evicted is not None:
                self._release_key(evicted)

    def _release_key(self, job: Job) -> None:
        # Only if the key still points at this job
        if job.idempotency_key and self._keys.get(job.idempotency_key) == job.id:
            del self._keys[job.idempotency_key]

    async def _handle_failure(self, job: Job, exc: BaseException) -> None:
        tracing.error(
            f"Job failed after {job.attempts} attempts: {job.job_type}",
            job_id=job.id,
            error=job.last_error
        )
        on_failure = self._failure_handlers.get(job.job_type)
        if on_failure is None:
            return
        try:
            await on_failure(job, exc)
        except Exception as e:
            logger.error(f"Failure handler for {job.job_type} raised: {e}")

    async def _worker(self, worker_name: str):
        logger.info(f"Job worker {worker_name} started")

        while self.running:
            try:
                job = await asyncio.wait_for(self.queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue

            try:
                await self.run_job(job)
            except Exception as e:
                logger.error(f"Job worker {worker_name} error: {e}")
            finally:
                self.queue.task_done()

        logger.info(f"Job worker {worker_name} stopped")
