"""PostgreSQL implementation of AttemptRepo."""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from exam_service.core.errors import AttemptInProgressError
from exam_service.db.tables import AttemptAnswerRow, AttemptRow
from exam_service.models.attempt import Attempt, AttemptAnswer, AttemptState
from exam_service.repos.pg_errors import storage_errors

_IN_PROGRESS_INDEX = "uq_attempt_in_progress"


class PgAttemptRepo:
    """Satisfies the AttemptRepo Protocol using PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, attempt_id: UUID) -> Attempt | None:
        stmt = select(AttemptRow).where(AttemptRow.id == attempt_id)
        with storage_errors("load attempt"):
            row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_attempt(row)

    async def create_in_progress(self, attempt: Attempt) -> None:
        """Insert a new in-progress attempt.

        The partial unique index uq_attempt_in_progress rejects a second
        in-progress row for the same (user, evaluation), so two concurrent
        "start exam" clicks can't both succeed.  The insert runs in a
        SAVEPOINT so the losing request's transaction stays usable.
        """
        row = AttemptRow(
            id=attempt.id,
            user_id=attempt.user_id,
            evaluation_id=attempt.evaluation_id,
            version_id=attempt.version_id,
            attempt_number=attempt.attempt_number,
            started_at=attempt.started_at,
            state=attempt.state,
        )
        with storage_errors("insert attempt"):
            try:
                async with self._session.begin_nested():
                    self._session.add(row)
                    await self._session.flush()
            except IntegrityError as e:
                if _IN_PROGRESS_INDEX in str(e.orig):
                    raise AttemptInProgressError() from None
                raise

    async def list_for_user(
        self,
        user_id: UUID,
        evaluation_ids: Sequence[UUID],
        state: AttemptState | None = None,
    ) -> list[Attempt]:
        if not evaluation_ids:
            return []
        stmt = (
            select(AttemptRow)
            .where(AttemptRow.user_id == user_id)
            .where(AttemptRow.evaluation_id.in_(list(evaluation_ids)))
            .order_by(AttemptRow.started_at, AttemptRow.attempt_number)
        )
        if state is not None:
            stmt = stmt.where(AttemptRow.state == state)
        with storage_errors("list attempts"):
            rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_attempt(r) for r in rows]

    async def list_by_evaluation(
        self,
        evaluation_id: UUID,
        *,
        user_id: UUID | None = None,
        state: AttemptState | None = None,
        started_from: int | None = None,
        started_to: int | None = None,
    ) -> list[Attempt]:
        stmt = select(AttemptRow).where(AttemptRow.evaluation_id == evaluation_id)
        if user_id is not None:
            stmt = stmt.where(AttemptRow.user_id == user_id)
        if state is not None:
            stmt = stmt.where(AttemptRow.state == state)
        if started_from is not None:
            stmt = stmt.where(AttemptRow.started_at >= started_from)
        if started_to is not None:
            stmt = stmt.where(AttemptRow.started_at <= started_to)
        stmt = stmt.order_by(
            AttemptRow.started_at.desc(), AttemptRow.attempt_number.desc()
        )
        with storage_errors("list attempts"):
            rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_attempt(r) for r in rows]

    async def terminate(
        self, attempt_id: UUID, *, finished_at: int, score: float, passed: bool
    ) -> Attempt | None:
        """Conditional terminal write.  Returns None if the attempt doesn't
        exist or is no longer in progress."""
        stmt = (
            update(AttemptRow)
            .where(AttemptRow.id == attempt_id)
            .where(AttemptRow.state == "in_progress")
            .values(
                finished_at=finished_at,
                score=score,
                passed=passed,
                state="terminated",
            )
            .returning(AttemptRow)
        )
        with storage_errors("terminate attempt"):
            row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None  # concurrent grading won the race
        return _row_to_attempt(row)

    async def upsert_answers(self, answers: Sequence[AttemptAnswer]) -> None:
        if not answers:
            return
        stmt = insert(AttemptAnswerRow).values(
            [
                {
                    "attempt_id": a.attempt_id,
                    "question_id": a.question_id,
                    "submitted_value": a.submitted_value,
                    "correct": a.correct,
                    "answered_at": a.answered_at,
                }
                for a in answers
            ]
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[AttemptAnswerRow.attempt_id, AttemptAnswerRow.question_id],
            set_={
                "submitted_value": stmt.excluded.submitted_value,
                "correct": stmt.excluded.correct,
                "answered_at": stmt.excluded.answered_at,
            },
        )
        with storage_errors("upsert answers"):
            await self._session.execute(stmt)

    async def list_answers(self, attempt_id: UUID) -> list[AttemptAnswer]:
        stmt = select(AttemptAnswerRow).where(AttemptAnswerRow.attempt_id == attempt_id)
        with storage_errors("list answers"):
            rows = (await self._session.execute(stmt)).scalars().all()
        return [
            AttemptAnswer(
                attempt_id=r.attempt_id,
                question_id=r.question_id,
                submitted_value=r.submitted_value,
                answered_at=r.answered_at,
                correct=r.correct,
            )
            for r in rows
        ]


def _row_to_attempt(row: AttemptRow) -> Attempt:
    return Attempt(
        id=row.id,
        user_id=row.user_id,
        evaluation_id=row.evaluation_id,
        version_id=row.version_id,
        attempt_number=row.attempt_number,
        started_at=row.started_at,
        finished_at=row.finished_at,
        score=row.score,
        passed=row.passed,
        state=row.state,  # type: ignore[arg-type]
    )
