from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from fastapi import APIRouter, Depends, status

from .schemas import TriggerAcceptedResponse, TriggerRequest


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/automation", tags=["automation"])

TriggerDispatcher = Callable[[str, dict], Awaitable["str | None"]]


def get_trigger_dispatcher() -> TriggerDispatcher:
    from clinicflow.workers.tasks import process_trigger_task

    async def dispatch(trigger: str, context: dict) -> str | None:
        # Broker publish blocks; keep it off the event loop.
        result = await asyncio.to_thread(process_trigger_task.delay, trigger, context)
        return result.id

    return dispatch


@router.post(
    "/triggers",
    response_model=TriggerAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def submit_trigger(
    body: TriggerRequest,
    dispatch: TriggerDispatcher = Depends(get_trigger_dispatcher),
) -> TriggerAcceptedResponse:
    """Queue a rule-engine pass. Rules never run inside the request."""
    task_id = await dispatch(body.trigger.value, body.to_context())
    logger.info("Trigger %s queued for tenant %s (task %s)", body.trigger.value, body.tenant_id, task_id)
    return TriggerAcceptedResponse(task_id=task_id, trigger=body.trigger)
