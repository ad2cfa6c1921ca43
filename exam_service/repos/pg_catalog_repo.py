"""PostgreSQL implementations of CourseCatalog and EnrollmentRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from exam_service.db.tables import EnrollmentRow, LessonRow
from exam_service.repos.pg_errors import storage_errors


class PgCourseCatalog:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def course_id_for_lesson(self, lesson_id: UUID) -> UUID | None:
        stmt = select(LessonRow.course_id).where(LessonRow.id == lesson_id)
        with storage_errors("resolve lesson course"):
            return (await self._session.execute(stmt)).scalar_one_or_none()

    async def lesson_ids_for_course(self, course_id: UUID) -> list[UUID]:
        stmt = select(LessonRow.id).where(LessonRow.course_id == course_id)
        with storage_errors("list course lessons"):
            return list((await self._session.execute(stmt)).scalars().all())

    async def add_lesson(self, lesson_id: UUID, course_id: UUID) -> None:
        stmt = (
            insert(LessonRow)
            .values(id=lesson_id, course_id=course_id)
            .on_conflict_do_update(
                index_elements=[LessonRow.id], set_={"course_id": course_id}
            )
        )
        with storage_errors("insert lesson"):
            await self._session.execute(stmt)


class PgEnrollmentRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def is_enrolled(self, user_id: UUID, course_id: UUID) -> bool:
        stmt = (
            select(EnrollmentRow.user_id)
            .where(EnrollmentRow.user_id == user_id)
            .where(EnrollmentRow.course_id == course_id)
        )
        with storage_errors("check enrollment"):
            return (await self._session.execute(stmt)).first() is not None

    async def enroll(self, user_id: UUID, course_id: UUID) -> None:
        stmt = (
            insert(EnrollmentRow)
            .values(user_id=user_id, course_id=course_id)
            .on_conflict_do_nothing()
        )
        with storage_errors("insert enrollment"):
            await self._session.execute(stmt)

    async def list_course_ids(self, user_id: UUID) -> list[UUID]:
        stmt = select(EnrollmentRow.course_id).where(EnrollmentRow.user_id == user_id)
        with storage_errors("list enrollments"):
            return list((await self._session.execute(stmt)).scalars().all())
