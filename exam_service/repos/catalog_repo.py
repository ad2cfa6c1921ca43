from __future__ import annotations

from typing import Protocol
from uuid import UUID


class CourseCatalog(Protocol):
    """Lesson → course resolution.  Courses themselves are owned elsewhere."""

    async def course_id_for_lesson(self, lesson_id: UUID) -> UUID | None: ...
    async def lesson_ids_for_course(self, course_id: UUID) -> list[UUID]: ...
    async def add_lesson(self, lesson_id: UUID, course_id: UUID) -> None: ...


class InMemoryCourseCatalog:
    def __init__(self) -> None:
        self._course_by_lesson: dict[UUID, UUID] = {}

    async def course_id_for_lesson(self, lesson_id: UUID) -> UUID | None:
        return self._course_by_lesson.get(lesson_id)

    async def lesson_ids_for_course(self, course_id: UUID) -> list[UUID]:
        return [
            lesson_id
            for lesson_id, cid in self._course_by_lesson.items()
            if cid == course_id
        ]

    async def add_lesson(self, lesson_id: UUID, course_id: UUID) -> None:
        self._course_by_lesson[lesson_id] = course_id
