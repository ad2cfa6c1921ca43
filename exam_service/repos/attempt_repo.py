from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from typing import Protocol
from uuid import UUID

from exam_service.core.errors import AttemptInProgressError
from exam_service.models.attempt import Attempt, AttemptAnswer, AttemptState


class AttemptRepo(Protocol):
    async def get_by_id(self, attempt_id: UUID) -> Attempt | None: ...
    async def create_in_progress(self, attempt: Attempt) -> None: ...
    async def list_for_user(
        self,
        user_id: UUID,
        evaluation_ids: Sequence[UUID],
        state: AttemptState | None = None,
    ) -> list[Attempt]: ...
    async def list_by_evaluation(
        self,
        evaluation_id: UUID,
        *,
        user_id: UUID | None = None,
        state: AttemptState | None = None,
        started_from: int | None = None,
        started_to: int | None = None,
    ) -> list[Attempt]: ...
    async def terminate(
        self, attempt_id: UUID, *, finished_at: int, score: float, passed: bool
    ) -> Attempt | None: ...
    async def upsert_answers(self, answers: Sequence[AttemptAnswer]) -> None: ...
    async def list_answers(self, attempt_id: UUID) -> list[AttemptAnswer]: ...


class InMemoryAttemptRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Attempt] = {}
        self._answers: dict[tuple[UUID, UUID], AttemptAnswer] = {}

    async def get_by_id(self, attempt_id: UUID) -> Attempt | None:
        return self._by_id.get(attempt_id)

    async def create_in_progress(self, attempt: Attempt) -> None:
        """Insert unless the user already has an in-progress attempt.

        No await between the check and the insert, so on a single event
        loop this is atomic, like the partial unique index in Postgres.
        """
        for existing in self._by_id.values():
            if (
                existing.user_id == attempt.user_id
                and existing.evaluation_id == attempt.evaluation_id
                and existing.state == "in_progress"
            ):
                raise AttemptInProgressError()
        self._by_id[attempt.id] = attempt

    async def list_for_user(
        self,
        user_id: UUID,
        evaluation_ids: Sequence[UUID],
        state: AttemptState | None = None,
    ) -> list[Attempt]:
        wanted = set(evaluation_ids)
        found = [
            a
            for a in self._by_id.values()
            if a.user_id == user_id
            and a.evaluation_id in wanted
            and (state is None or a.state == state)
        ]
        return sorted(found, key=lambda a: (a.started_at, a.attempt_number))

    async def list_by_evaluation(
        self,
        evaluation_id: UUID,
        *,
        user_id: UUID | None = None,
        state: AttemptState | None = None,
        started_from: int | None = None,
        started_to: int | None = None,
    ) -> list[Attempt]:
        found = []
        for a in self._by_id.values():
            if a.evaluation_id != evaluation_id:
                continue
            if user_id is not None and a.user_id != user_id:
                continue
            if state is not None and a.state != state:
                continue
            if started_from is not None and a.started_at < started_from:
                continue
            if started_to is not None and a.started_at > started_to:
                continue
            found.append(a)
        return sorted(found, key=lambda a: (a.started_at, a.attempt_number), reverse=True)

    async def terminate(
        self, attempt_id: UUID, *, finished_at: int, score: float, passed: bool
    ) -> Attempt | None:
        """Move an in-progress attempt to terminated.  Returns None if the
        attempt doesn't exist or was already terminated."""
        attempt = self._by_id.get(attempt_id)
        if attempt is None or attempt.state != "in_progress":
            return None
        updated = replace(
            attempt,
            finished_at=finished_at,
            score=score,
            passed=passed,
            state="terminated",
        )
        self._by_id[attempt_id] = updated
        return updated

    async def upsert_answers(self, answers: Sequence[AttemptAnswer]) -> None:
        for answer in answers:
            self._answers[(answer.attempt_id, answer.question_id)] = answer

    async def list_answers(self, attempt_id: UUID) -> list[AttemptAnswer]:
        return [a for (aid, _), a in self._answers.items() if aid == attempt_id]
