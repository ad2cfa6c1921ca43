from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

STAFF_ROLES = frozenset({"admin", "instructor"})


@dataclass(frozen=True, slots=True)
class Principal:
    """Identity of the caller for one request.

    Built per request from the gateway's identity headers and passed
    explicitly into every engine call; nothing keeps a "current user"
    between requests.

        user_id: authenticated user
        roles: platform roles (admin, instructor, student)
        ip: client address, recorded on audit events
    """

    user_id: UUID
    roles: frozenset[str]
    ip: str | None = None

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def has_any_role(self, roles: set[str] | frozenset[str]) -> bool:
        return bool(self.roles & roles)

    def is_staff(self) -> bool:
        return self.has_any_role(STAFF_ROLES)

    def can_access(self, owner_id: UUID) -> bool:
        return self.user_id == owner_id or self.is_staff()
