"""PostgreSQL implementation of QuestionBank."""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from exam_service.db.tables import QuestionRow
from exam_service.models.question import Question, QuestionOption
from exam_service.repos.pg_errors import storage_errors


class PgQuestionBank:
    """Satisfies the QuestionBank Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, question_id: UUID) -> Question | None:
        stmt = select(QuestionRow).where(QuestionRow.id == question_id)
        with storage_errors("load question"):
            row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_question(row)

    async def fetch_active_questions(self, lesson_id: UUID) -> list[Question]:
        stmt = (
            select(QuestionRow)
            .where(QuestionRow.lesson_id == lesson_id)
            .where(QuestionRow.active.is_(True))
            .order_by(QuestionRow.id)
        )
        with storage_errors("load question pool"):
            rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_question(r) for r in rows]

    async def fetch_questions_by_ids(self, ids: Sequence[UUID]) -> list[Question]:
        if not ids:
            return []
        stmt = select(QuestionRow).where(QuestionRow.id.in_(list(ids)))
        with storage_errors("load questions"):
            rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_question(r) for r in rows]

    async def add(self, question: Question) -> None:
        row = QuestionRow(
            id=question.id,
            lesson_id=question.lesson_id,
            statement=question.statement,
            type=question.type,
            options=[{"value": o.value, "label": o.label} for o in question.options],
            correct_answer=question.correct_answer,
            difficulty=question.difficulty,
            active=question.active,
        )
        with storage_errors("insert question"):
            self._session.add(row)
            await self._session.flush()


def _row_to_question(row: QuestionRow) -> Question:
    return Question(
        id=row.id,
        lesson_id=row.lesson_id,
        statement=row.statement,
        type=row.type,  # type: ignore[arg-type]
        options=tuple(
            QuestionOption(value=str(o.get("value", "")), label=str(o.get("label", "")))
            for o in (row.options or [])
        ),
        correct_answer=row.correct_answer,
        difficulty=row.difficulty,
        active=row.active,
    )
