from __future__ import annotations

from typing import Protocol

from exam_service.models.audit import AuditEvent


class AuditRepo(Protocol):
    async def add(self, event: AuditEvent) -> None: ...
    async def list_recent(self, limit: int = 100) -> list[AuditEvent]: ...


class InMemoryAuditRepo:
    def __init__(self) -> None:
        self._events: list[AuditEvent] = []

    async def add(self, event: AuditEvent) -> None:
        self._events.append(event)

    async def list_recent(self, limit: int = 100) -> list[AuditEvent]:
        return sorted(self._events, key=lambda e: e.created_at, reverse=True)[:limit]
