from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal
from uuid import UUID, uuid4

AttemptState = Literal["in_progress", "terminated"]


@dataclass(frozen=True, slots=True)
class Attempt:
    id: UUID
    user_id: UUID
    evaluation_id: UUID
    version_id: UUID
    attempt_number: int
    started_at: int
    finished_at: int | None = None
    score: float | None = None
    passed: bool | None = None
    state: AttemptState = "in_progress"

    @property
    def is_terminated(self) -> bool:
        return self.state == "terminated"

    @staticmethod
    def new(
        *,
        user_id: UUID,
        evaluation_id: UUID,
        version_id: UUID,
        attempt_number: int,
        started_at: int,
    ) -> Attempt:
        return Attempt(
            id=uuid4(),
            user_id=user_id,
            evaluation_id=evaluation_id,
            version_id=version_id,
            attempt_number=attempt_number,
            started_at=started_at,
        )


@dataclass(frozen=True, slots=True)
class AttemptAnswer:
    """One row per (attempt, question).  ``correct`` stays None until graded."""

    attempt_id: UUID
    question_id: UUID
    submitted_value: Any
    answered_at: int
    correct: bool | None = None


@dataclass(frozen=True, slots=True)
class AttemptStart:
    attempt: Attempt
    version_number: int
    time_limit_minutes: int | None
    deadline: int | None  # epoch seconds, None = unlimited


@dataclass(frozen=True, slots=True)
class GradeResult:
    attempt_id: UUID
    score: float
    passed: bool
    correct_count: int
    total_questions: int
    late: bool
    finished_at: int
