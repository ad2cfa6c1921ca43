from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4

DEFAULT_PASSING_SCORE = 60.0


@dataclass(frozen=True, slots=True)
class Evaluation:
    id: UUID
    lesson_id: UUID
    title: str
    questions_per_exam: int
    version_count: int
    max_attempts: int = 0  # 0 = unlimited
    time_limit_minutes: int | None = None  # None/0 = unlimited
    passing_score: float = DEFAULT_PASSING_SCORE
    active: bool = True
    description: str | None = None

    @property
    def has_attempt_limit(self) -> bool:
        return self.max_attempts > 0

    @property
    def has_time_limit(self) -> bool:
        return bool(self.time_limit_minutes)

    def deadline_for(self, started_at: int) -> int | None:
        """Epoch second after which a submission counts as late."""
        if not self.has_time_limit:
            return None
        return started_at + int(self.time_limit_minutes or 0) * 60

    @staticmethod
    def new(
        *,
        lesson_id: UUID,
        title: str,
        questions_per_exam: int,
        version_count: int,
        max_attempts: int = 0,
        time_limit_minutes: int | None = None,
        passing_score: float = DEFAULT_PASSING_SCORE,
        active: bool = True,
        description: str | None = None,
    ) -> Evaluation:
        if questions_per_exam < 1:
            raise ValueError("questions_per_exam must be >= 1")
        if version_count < 1:
            raise ValueError("version_count must be >= 1")
        return Evaluation(
            id=uuid4(),
            lesson_id=lesson_id,
            title=title,
            questions_per_exam=questions_per_exam,
            version_count=version_count,
            max_attempts=max_attempts,
            time_limit_minutes=time_limit_minutes,
            passing_score=passing_score,
            active=active,
            description=description,
        )


@dataclass(frozen=True, slots=True)
class ExamVersion:
    """A frozen randomized question set.  Never edited, only regenerated."""

    id: UUID
    evaluation_id: UUID
    version_number: int
    question_ids: tuple[UUID, ...]

    @staticmethod
    def new(
        *, evaluation_id: UUID, version_number: int, question_ids: tuple[UUID, ...]
    ) -> ExamVersion:
        return ExamVersion(
            id=uuid4(),
            evaluation_id=evaluation_id,
            version_number=version_number,
            question_ids=question_ids,
        )
