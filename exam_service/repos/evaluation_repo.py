from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol
from uuid import UUID

from exam_service.models.evaluation import Evaluation, ExamVersion


class EvaluationRepo(Protocol):
    async def get_by_id(self, evaluation_id: UUID) -> Evaluation | None: ...
    async def add(self, evaluation: Evaluation) -> None: ...
    async def update(self, evaluation: Evaluation) -> None: ...
    async def list_active_by_lessons(
        self, lesson_ids: Sequence[UUID]
    ) -> list[Evaluation]: ...
    async def list_versions(self, evaluation_id: UUID) -> list[ExamVersion]: ...
    async def get_version(self, version_id: UUID) -> ExamVersion | None: ...
    async def replace_versions(
        self, evaluation_id: UUID, versions: Sequence[ExamVersion]
    ) -> None: ...


class InMemoryEvaluationRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Evaluation] = {}
        self._versions: dict[UUID, ExamVersion] = {}

    async def get_by_id(self, evaluation_id: UUID) -> Evaluation | None:
        return self._by_id.get(evaluation_id)

    async def add(self, evaluation: Evaluation) -> None:
        if evaluation.id in self._by_id:
            raise ValueError("evaluation already exists")
        self._by_id[evaluation.id] = evaluation

    async def update(self, evaluation: Evaluation) -> None:
        if evaluation.id not in self._by_id:
            raise KeyError("evaluation not found")
        self._by_id[evaluation.id] = evaluation

    async def list_active_by_lessons(
        self, lesson_ids: Sequence[UUID]
    ) -> list[Evaluation]:
        wanted = set(lesson_ids)
        return [e for e in self._by_id.values() if e.active and e.lesson_id in wanted]

    async def list_versions(self, evaluation_id: UUID) -> list[ExamVersion]:
        versions = [v for v in self._versions.values() if v.evaluation_id == evaluation_id]
        return sorted(versions, key=lambda v: v.version_number)

    async def get_version(self, version_id: UUID) -> ExamVersion | None:
        return self._versions.get(version_id)

    async def replace_versions(
        self, evaluation_id: UUID, versions: Sequence[ExamVersion]
    ) -> None:
        # Delete-all then insert-all, same as the Postgres repo
        stale = [k for k, v in self._versions.items() if v.evaluation_id == evaluation_id]
        for k in stale:
            del self._versions[k]
        for v in versions:
            self._versions[v.id] = v
