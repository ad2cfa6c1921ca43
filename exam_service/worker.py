"""Background worker process.

RUN:  python -m exam_service.worker

The API hands audit events to the "audit" queue and returns; this
process drains the queue and writes each event to the audit_events
table.  Same image as the API, different command:

  api:    uvicorn exam_service.main:app --host 0.0.0.0 --port 8000
  worker: python -m exam_service.worker

Without DATABASE_URL the events go to an in-memory repo and the log,
which is enough to watch the flow locally.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from exam_service.core.config import SETTINGS
from exam_service.core.logging import setup_logging
from exam_service.db import engine as db_engine
from exam_service.repos.audit_repo import InMemoryAuditRepo
from exam_service.repos.pg_audit_repo import PgAuditRepo
from exam_service.services.audit import AUDIT_QUEUE, store_audit_payload
from exam_service.services.task_queue import TaskQueue, task_queue

TaskHandler = Callable[[dict], Coroutine[Any, Any, None]]

logger = logging.getLogger("worker")

# Fallback store when no database is configured
in_memory_audit_repo = InMemoryAuditRepo()


# ---------------------------------------------------------------------------
# Handler registry
# ---------------------------------------------------------------------------

HANDLERS: dict[str, TaskHandler] = {}


def register_handler(queue: str):
    """Decorator: register a coroutine as the handler for a queue."""

    def decorator(func):
        HANDLERS[queue] = func
        return func

    return decorator


@register_handler(AUDIT_QUEUE)
async def handle_audit(payload: dict) -> None:
    if db_engine.async_session_factory is None:
        await store_audit_payload(payload, in_memory_audit_repo)
        return
    async with db_engine.session_scope() as session:
        await store_audit_payload(payload, PgAuditRepo(session))


# ---------------------------------------------------------------------------
# Main worker loop
# ---------------------------------------------------------------------------


async def process_one(queue_name: str, queue: TaskQueue, timeout: int = 1) -> bool:
    """Dequeue and handle at most one task.  Returns True if one was handled."""
    task = await queue.dequeue(queue_name, timeout=timeout)
    if task is None:
        return False

    try:
        await HANDLERS[queue_name](task.payload)
        logger.info("Task %s on [%s] completed", task.id, queue_name)
    except Exception:
        # At-most-once: a failed task is logged and dropped
        logger.exception("Task %s on [%s] failed", task.id, queue_name)
    return True


async def run_worker(queue: TaskQueue = task_queue) -> None:
    """Poll all registered queues and dispatch tasks to handlers."""
    queues = list(HANDLERS.keys())
    logger.info("Worker started — listening on queues: %s", queues)

    while True:
        handled = [await process_one(queue_name, queue) for queue_name in queues]
        if not any(handled):
            # The in-memory queue returns immediately instead of blocking
            await asyncio.sleep(0.1)


if __name__ == "__main__":
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    asyncio.run(run_worker())
