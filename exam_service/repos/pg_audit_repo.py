"""PostgreSQL implementation of AuditRepo."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from exam_service.db.tables import AuditEventRow
from exam_service.models.audit import AuditEvent
from exam_service.repos.pg_errors import storage_errors


class PgAuditRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, event: AuditEvent) -> None:
        row = AuditEventRow(
            id=event.id,
            user_id=event.user_id,
            action=event.action,
            description=event.description,
            ip=event.ip,
            created_at=event.created_at,
        )
        with storage_errors("insert audit event"):
            self._session.add(row)
            await self._session.flush()

    async def list_recent(self, limit: int = 100) -> list[AuditEvent]:
        stmt = (
            select(AuditEventRow).order_by(AuditEventRow.created_at.desc()).limit(limit)
        )
        with storage_errors("list audit events"):
            rows = (await self._session.execute(stmt)).scalars().all()
        return [
            AuditEvent(
                id=r.id,
                user_id=r.user_id,
                action=r.action,
                description=r.description,
                created_at=r.created_at,
                ip=r.ip,
            )
            for r in rows
        ]
