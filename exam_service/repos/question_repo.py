from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol
from uuid import UUID

from exam_service.models.question import Question


class QuestionBank(Protocol):
    async def get_by_id(self, question_id: UUID) -> Question | None: ...
    async def fetch_active_questions(self, lesson_id: UUID) -> list[Question]: ...
    async def fetch_questions_by_ids(self, ids: Sequence[UUID]) -> list[Question]: ...
    async def add(self, question: Question) -> None: ...


class InMemoryQuestionBank:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Question] = {}

    async def get_by_id(self, question_id: UUID) -> Question | None:
        return self._by_id.get(question_id)

    async def fetch_active_questions(self, lesson_id: UUID) -> list[Question]:
        return [
            q for q in self._by_id.values() if q.lesson_id == lesson_id and q.active
        ]

    async def fetch_questions_by_ids(self, ids: Sequence[UUID]) -> list[Question]:
        return [self._by_id[i] for i in dict.fromkeys(ids) if i in self._by_id]

    async def add(self, question: Question) -> None:
        if question.id in self._by_id:
            raise ValueError("question already exists")
        self._by_id[question.id] = question
