from __future__ import annotations

from typing import Protocol
from uuid import UUID


class EnrollmentRepo(Protocol):
    async def is_enrolled(self, user_id: UUID, course_id: UUID) -> bool: ...
    async def enroll(self, user_id: UUID, course_id: UUID) -> None: ...
    async def list_course_ids(self, user_id: UUID) -> list[UUID]: ...


class InMemoryEnrollmentRepo:
    def __init__(self) -> None:
        self._store: set[tuple[UUID, UUID]] = set()

    async def is_enrolled(self, user_id: UUID, course_id: UUID) -> bool:
        return (user_id, course_id) in self._store

    async def enroll(self, user_id: UUID, course_id: UUID) -> None:
        self._store.add((user_id, course_id))

    async def list_course_ids(self, user_id: UUID) -> list[UUID]:
        return [course_id for uid, course_id in self._store if uid == user_id]
