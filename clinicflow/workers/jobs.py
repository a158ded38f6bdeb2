"""
Fire-and-forget background jobs.

The engine hands work such as outbound messages and delayed surveys to a
`JobQueue`; Celery is the production queue. Job type `foo` is published as
the task `clinicflow.jobs.foo`.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Literal

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

JobType = Literal[
    "send_message",
    "send_notification",
    "send_satisfaction_survey",
    "update_crm_customer",
    "add_crm_note",
]


class Job(BaseModel):
    type: JobType
    data: dict[str, Any] = Field(default_factory=dict)
    # Native delay unit of the queue.
    delay_seconds: float | None = None


class JobQueue(ABC):
    @abstractmethod
    async def enqueue(self, job: Job) -> str | None:
        """Publish a job and return its id; completion is never awaited."""


def task_name(job_type: str) -> str:
    return f"clinicflow.jobs.{job_type}"


class CeleryJobQueue(JobQueue):
    def __init__(self, app=None):
        if app is None:
            from clinicflow.workers.celery_app import celery_app

            app = celery_app
        self.app = app

    async def enqueue(self, job: Job) -> str | None:
        countdown = job.delay_seconds if job.delay_seconds and job.delay_seconds > 0 else None
        # send_task talks to the broker synchronously.
        result = await asyncio.to_thread(
            self.app.send_task,
            task_name(job.type),
            kwargs={"data": job.data},
            countdown=countdown,
        )
        logger.debug("Enqueued %s job %s (countdown=%s)", job.type, result.id, countdown)
        return result.id
