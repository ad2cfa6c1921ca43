"""PostgreSQL implementation of EvaluationRepo."""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from exam_service.db.tables import EvaluationRow, EvaluationVersionRow
from exam_service.models.evaluation import Evaluation, ExamVersion
from exam_service.repos.pg_errors import storage_errors


class PgEvaluationRepo:
    """Satisfies the EvaluationRepo Protocol using PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, evaluation_id: UUID) -> Evaluation | None:
        stmt = select(EvaluationRow).where(EvaluationRow.id == evaluation_id)
        with storage_errors("load evaluation"):
            row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_evaluation(row)

    async def add(self, evaluation: Evaluation) -> None:
        row = EvaluationRow(id=evaluation.id, **_evaluation_values(evaluation))
        with storage_errors("insert evaluation"):
            self._session.add(row)
            await self._session.flush()

    async def update(self, evaluation: Evaluation) -> None:
        stmt = (
            update(EvaluationRow)
            .where(EvaluationRow.id == evaluation.id)
            .values(**_evaluation_values(evaluation))
        )
        with storage_errors("update evaluation"):
            result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise KeyError("evaluation not found")

    async def list_active_by_lessons(
        self, lesson_ids: Sequence[UUID]
    ) -> list[Evaluation]:
        if not lesson_ids:
            return []
        stmt = (
            select(EvaluationRow)
            .where(EvaluationRow.lesson_id.in_(list(lesson_ids)))
            .where(EvaluationRow.active.is_(True))
        )
        with storage_errors("list evaluations"):
            rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_evaluation(r) for r in rows]

    async def list_versions(self, evaluation_id: UUID) -> list[ExamVersion]:
        stmt = (
            select(EvaluationVersionRow)
            .where(EvaluationVersionRow.evaluation_id == evaluation_id)
            .order_by(EvaluationVersionRow.version_number)
        )
        with storage_errors("list versions"):
            rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_version(r) for r in rows]

    async def get_version(self, version_id: UUID) -> ExamVersion | None:
        stmt = select(EvaluationVersionRow).where(EvaluationVersionRow.id == version_id)
        with storage_errors("load version"):
            row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_version(row)

    async def replace_versions(
        self, evaluation_id: UUID, versions: Sequence[ExamVersion]
    ) -> None:
        # Both statements run in the request's transaction, so a failure
        # between them rolls back to the previous set of versions.
        with storage_errors("replace versions"):
            await self._session.execute(
                delete(EvaluationVersionRow).where(
                    EvaluationVersionRow.evaluation_id == evaluation_id
                )
            )
            self._session.add_all(
                EvaluationVersionRow(
                    id=v.id,
                    evaluation_id=v.evaluation_id,
                    version_number=v.version_number,
                    question_ids=list(v.question_ids),
                )
                for v in versions
            )
            await self._session.flush()


def _evaluation_values(evaluation: Evaluation) -> dict:
    return {
        "lesson_id": evaluation.lesson_id,
        "title": evaluation.title,
        "description": evaluation.description,
        "questions_per_exam": evaluation.questions_per_exam,
        "version_count": evaluation.version_count,
        "max_attempts": evaluation.max_attempts,
        "time_limit_minutes": evaluation.time_limit_minutes,
        "passing_score": evaluation.passing_score,
        "active": evaluation.active,
    }


def _row_to_evaluation(row: EvaluationRow) -> Evaluation:
    return Evaluation(
        id=row.id,
        lesson_id=row.lesson_id,
        title=row.title,
        description=row.description,
        questions_per_exam=row.questions_per_exam,
        version_count=row.version_count,
        max_attempts=row.max_attempts or 0,
        time_limit_minutes=row.time_limit_minutes,
        passing_score=float(row.passing_score),
        active=row.active,
    )


def _row_to_version(row: EvaluationVersionRow) -> ExamVersion:
    return ExamVersion(
        id=row.id,
        evaluation_id=row.evaluation_id,
        version_number=row.version_number,
        question_ids=tuple(row.question_ids or ()),
    )
