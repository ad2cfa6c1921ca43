from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class AuditEvent:
    id: UUID
    user_id: UUID
    action: str  # start_exam|finish_exam|regenerate_versions
    description: str
    created_at: int
    ip: str | None = None

    @staticmethod
    def new(
        *,
        user_id: UUID,
        action: str,
        description: str,
        created_at: int,
        ip: str | None = None,
    ) -> AuditEvent:
        return AuditEvent(
            id=uuid4(),
            user_id=user_id,
            action=action,
            description=description,
            created_at=created_at,
            ip=ip,
        )

    def to_payload(self) -> dict:
        return {
            "id": str(self.id),
            "user_id": str(self.user_id),
            "action": self.action,
            "description": self.description,
            "created_at": self.created_at,
            "ip": self.ip,
        }

    @staticmethod
    def from_payload(payload: dict) -> AuditEvent:
        return AuditEvent(
            id=UUID(payload["id"]),
            user_id=UUID(payload["user_id"]),
            action=payload["action"],
            description=payload["description"],
            created_at=int(payload["created_at"]),
            ip=payload.get("ip"),
        )
