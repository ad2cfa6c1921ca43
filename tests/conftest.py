from __future__ import annotations

import asyncio
import random
import sys
import uuid
from dataclasses import dataclass
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Ensure repo root is on sys.path so `import exam_service` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from exam_service.api.dependencies import in_memory_repos  # noqa: E402
from exam_service.main import app  # noqa: E402
from exam_service.models.evaluation import Evaluation, ExamVersion  # noqa: E402
from exam_service.models.principal import Principal  # noqa: E402
from exam_service.models.question import Question, QuestionOption  # noqa: E402
from exam_service.repos.registry import Repositories  # noqa: E402
from exam_service.services.cache import cache_service  # noqa: E402
from exam_service.services.task_queue import task_queue  # noqa: E402
from exam_service.services.version_generator import regenerate_versions  # noqa: E402


@pytest.fixture(autouse=True)
def reset_repos() -> None:
    """Clear the shared in-memory repositories between tests."""
    in_memory_repos.questions._by_id.clear()  # type: ignore[attr-defined]
    in_memory_repos.evaluations._by_id.clear()  # type: ignore[attr-defined]
    in_memory_repos.evaluations._versions.clear()  # type: ignore[attr-defined]
    in_memory_repos.attempts._by_id.clear()  # type: ignore[attr-defined]
    in_memory_repos.attempts._answers.clear()  # type: ignore[attr-defined]
    in_memory_repos.catalog._course_by_lesson.clear()  # type: ignore[attr-defined]
    in_memory_repos.enrollments._store.clear()  # type: ignore[attr-defined]


@pytest.fixture(autouse=True)
def reset_cache() -> None:
    """Clear cache between tests."""
    if hasattr(cache_service, "_store"):
        cache_service._store.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_task_queue() -> None:
    """Clear task queues between tests."""
    if hasattr(task_queue, "_queues"):
        task_queue._queues.clear()  # type: ignore[union-attr]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def repos() -> Repositories:
    """The same in-memory store the API serves from."""
    return in_memory_repos


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


# ---------------------------------------------------------------------------
# Identity helpers
# ---------------------------------------------------------------------------


def principal(*roles: str, user_id: uuid.UUID | None = None) -> Principal:
    return Principal(user_id=user_id or uuid.uuid4(), roles=frozenset(roles or {"student"}))


def headers_for(p: Principal) -> dict[str, str]:
    return {"X-User-Id": str(p.user_id), "X-User-Roles": ",".join(sorted(p.roles))}


@pytest.fixture
def student() -> Principal:
    return principal("student")


@pytest.fixture
def instructor() -> Principal:
    return principal("instructor")


# ---------------------------------------------------------------------------
# Seeding helpers
# ---------------------------------------------------------------------------


@dataclass
class Course:
    course_id: uuid.UUID
    lesson_id: uuid.UUID
    questions: list[Question]


def seed_course(
    repos: Repositories,
    *,
    question_count: int = 10,
    enroll: list[uuid.UUID] | None = None,
    lesson_id: uuid.UUID | None = None,
    course_id: uuid.UUID | None = None,
) -> Course:
    """A course with one lesson whose bank holds ``question_count`` open
    questions; question i has correct answer "a{i}"."""
    course_id = course_id or uuid.uuid4()
    lesson_id = lesson_id or uuid.uuid4()

    async def _seed() -> list[Question]:
        await repos.catalog.add_lesson(lesson_id, course_id)
        for user_id in enroll or []:
            await repos.enrollments.enroll(user_id, course_id)
        questions = []
        for i in range(question_count):
            q = Question.new(
                lesson_id=lesson_id,
                statement=f"Question {i}",
                type="open",
                correct_answer=f"a{i}",
            )
            await repos.questions.add(q)
            questions.append(q)
        return questions

    return Course(course_id, lesson_id, asyncio.run(_seed()))


def seed_evaluation(
    repos: Repositories,
    lesson_id: uuid.UUID,
    *,
    questions_per_exam: int = 10,
    version_count: int = 1,
    max_attempts: int = 0,
    passing_score: float = 60.0,
    time_limit_minutes: int | None = None,
    title: str = "Final exam",
    rng: random.Random | None = None,
) -> tuple[Evaluation, list[ExamVersion]]:
    evaluation = Evaluation.new(
        lesson_id=lesson_id,
        title=title,
        questions_per_exam=questions_per_exam,
        version_count=version_count,
        max_attempts=max_attempts,
        passing_score=passing_score,
        time_limit_minutes=time_limit_minutes,
    )

    async def _seed() -> list[ExamVersion]:
        await repos.evaluations.add(evaluation)
        return await regenerate_versions(evaluation, repos, rng or random.Random(7))

    return evaluation, asyncio.run(_seed())


def multiple_choice(lesson_id: uuid.UUID, correct) -> Question:
    return Question.new(
        lesson_id=lesson_id,
        statement="Pick one",
        type="multiple_choice",
        correct_answer=correct,
        options=(
            QuestionOption("a", "Option A"),
            QuestionOption("b", "Option B"),
            QuestionOption("c", "Option C"),
        ),
    )
