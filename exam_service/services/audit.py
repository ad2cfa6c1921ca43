"""Audit trail for exam actions.

Starting and finishing an exam, and regenerating an evaluation's
versions, each leave an AuditEvent.  Recording is fire-and-forget: the
event is pushed onto the "audit" task queue and the worker writes it to
the audit_events table.  A failure to enqueue is logged and counted,
never raised into the exam operation that triggered it.
"""

from __future__ import annotations

import datetime
import logging
from typing import Protocol
from uuid import UUID

from exam_service.core.metrics import AUDIT_FAILURES
from exam_service.models.audit import AuditEvent
from exam_service.repos.audit_repo import AuditRepo
from exam_service.services.task_queue import TaskQueue, task_queue

logger = logging.getLogger(__name__)

AUDIT_QUEUE = "audit"


class AuditLog(Protocol):
    async def record(self, event: AuditEvent) -> None: ...


class TaskQueueAuditLog:
    def __init__(self, queue: TaskQueue) -> None:
        self._queue = queue

    async def record(self, event: AuditEvent) -> None:
        task = await self._queue.enqueue(AUDIT_QUEUE, event.to_payload())
        logger.debug("Enqueued audit task=%s action=%s", task.id, event.action)


def build_event(
    user_id: UUID, action: str, description: str, ip: str | None = None
) -> AuditEvent:
    return AuditEvent.new(
        user_id=user_id,
        action=action,
        description=description,
        created_at=int(datetime.datetime.now(datetime.UTC).timestamp()),
        ip=ip,
    )


async def record_safely(audit: AuditLog, event: AuditEvent) -> None:
    try:
        await audit.record(event)
    except Exception:
        AUDIT_FAILURES.inc()
        logger.exception(
            "Audit event lost action=%s user=%s", event.action, event.user_id
        )


async def store_audit_payload(payload: dict, repo: AuditRepo) -> AuditEvent:
    """Worker side: persist one dequeued audit payload."""
    event = AuditEvent.from_payload(payload)
    await repo.add(event)
    logger.info(
        "Audit event stored action=%s user=%s", event.action, event.user_id
    )
    return event


audit_log: AuditLog = TaskQueueAuditLog(task_queue)
