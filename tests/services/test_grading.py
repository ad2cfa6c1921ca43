from __future__ import annotations

import asyncio
import uuid

import pytest

from exam_service.core.errors import AlreadyGradedError, AttemptAccessDeniedError
from exam_service.models.attempt import AttemptAnswer
from exam_service.models.evaluation import Evaluation, ExamVersion
from exam_service.models.principal import Principal
from exam_service.models.question import Question
from exam_service.repos.registry import Repositories
from exam_service.services.attempt_lifecycle import record_answer, start_attempt
from exam_service.services.audit import audit_log
from exam_service.services.cache import cache_service
from exam_service.services.grading import compute_grade, grade_attempt
from exam_service.services.task_queue import task_queue
from tests.conftest import principal, seed_course, seed_evaluation


def _exam(passing_score: float, time_limit_minutes: int | None = None):
    lesson_id = uuid.uuid4()
    questions = [
        Question.new(lesson_id=lesson_id, statement=f"Q{i}", type="open", correct_answer=f"a{i}")
        for i in range(10)
    ]
    evaluation = Evaluation.new(
        lesson_id=lesson_id,
        title="Quiz",
        questions_per_exam=10,
        version_count=1,
        passing_score=passing_score,
        time_limit_minutes=time_limit_minutes,
    )
    version = ExamVersion.new(
        evaluation_id=evaluation.id,
        version_number=1,
        question_ids=tuple(q.id for q in questions),
    )
    return evaluation, version, questions


def _answers(attempt_id: uuid.UUID, questions: list[Question], right: int) -> list[AttemptAnswer]:
    return [
        AttemptAnswer(
            attempt_id=attempt_id,
            question_id=q.id,
            submitted_value=f"a{i}" if i < right else "wrong",
            answered_at=0,
        )
        for i, q in enumerate(questions)
    ]


# ---- compute_grade (pure) ----


@pytest.mark.parametrize(("passing_score", "passed"), [(60, True), (75, False), (70, True)])
def test_seven_of_ten_scores_seventy(passing_score: float, passed: bool) -> None:
    evaluation, version, questions = _exam(passing_score)
    outcome = compute_grade(
        evaluation, version, questions, _answers(uuid.uuid4(), questions, 7), 100, 0
    )
    assert outcome.score == 70.00
    assert outcome.correct_count == 7
    assert outcome.total_questions == 10
    assert outcome.passed is passed


def test_unanswered_and_missing_questions_count_as_wrong() -> None:
    evaluation, version, questions = _exam(50)
    answers = _answers(uuid.uuid4(), questions, 10)[:6]
    # Two questions vanished from the bank
    outcome = compute_grade(evaluation, version, questions[2:], answers, 100, 0)
    assert outcome.correct_count == 4
    assert outcome.score == 40.0
    assert [a.correct for a in outcome.graded_answers] == [False, False, True, True, True, True]


def test_score_rounds_to_two_decimals() -> None:
    lesson_id = uuid.uuid4()
    questions = [
        Question.new(lesson_id=lesson_id, statement="?", type="open", correct_answer="x")
        for _ in range(3)
    ]
    evaluation = Evaluation.new(
        lesson_id=lesson_id, title="T", questions_per_exam=3, version_count=1
    )
    version = ExamVersion.new(
        evaluation_id=evaluation.id,
        version_number=1,
        question_ids=tuple(q.id for q in questions),
    )
    answers = [
        AttemptAnswer(attempt_id=uuid.uuid4(), question_id=questions[0].id, submitted_value="x", answered_at=0)
    ]
    assert compute_grade(evaluation, version, questions, answers, 1, 0).score == 33.33


def test_late_submission_is_flagged_not_penalized() -> None:
    evaluation, version, questions = _exam(60, time_limit_minutes=10)
    answers = _answers(uuid.uuid4(), questions, 10)
    on_time = compute_grade(evaluation, version, questions, answers, 600, 0)
    late = compute_grade(evaluation, version, questions, answers, 601, 0)
    assert on_time.late is False
    assert late.late is True
    assert late.score == on_time.score == 100.0


# ---- grade_attempt ----


def _answered_attempt(repos: Repositories, student: Principal, right: int):
    course = seed_course(repos, enroll=[student.user_id])
    evaluation, versions = seed_evaluation(repos, course.lesson_id, passing_score=60)
    by_id = {q.id: i for i, q in enumerate(course.questions)}

    async def _run():
        started = await start_attempt(student, evaluation.id, repos, audit_log, now=1_000)
        for n, qid in enumerate(versions[0].question_ids):
            value = f"a{by_id[qid]}" if n < right else "nope"
            await record_answer(student, started.attempt.id, qid, value, repos)
        return started.attempt

    return evaluation, asyncio.run(_run())


def test_grade_attempt_terminates_and_stores_correctness(
    repos: Repositories, student: Principal
) -> None:
    _, attempt = _answered_attempt(repos, student, right=7)

    result = asyncio.run(
        grade_attempt(student, attempt.id, repos, audit_log, cache_service, now=1_500)
    )

    assert result.score == 70.0
    assert result.passed is True
    assert result.finished_at == 1_500
    stored = asyncio.run(repos.attempts.get_by_id(attempt.id))
    assert stored is not None
    assert (stored.state, stored.score, stored.passed) == ("terminated", 70.0, True)
    answers = asyncio.run(repos.attempts.list_answers(attempt.id))
    assert sum(1 for a in answers if a.correct) == 7
    assert all(a.correct is not None for a in answers)


def test_second_grading_fails_and_keeps_first_result(
    repos: Repositories, student: Principal
) -> None:
    _, attempt = _answered_attempt(repos, student, right=4)
    asyncio.run(grade_attempt(student, attempt.id, repos, audit_log, cache_service))

    with pytest.raises(AlreadyGradedError):
        asyncio.run(grade_attempt(student, attempt.id, repos, audit_log, cache_service))

    stored = asyncio.run(repos.attempts.get_by_id(attempt.id))
    assert stored is not None
    assert (stored.score, stored.passed) == (40.0, False)


def test_grading_emits_finish_event_and_drops_cached_eligibility(
    repos: Repositories, student: Principal
) -> None:
    _, attempt = _answered_attempt(repos, student, right=10)
    key = f"eligibility:{student.user_id}:{uuid.uuid4()}"
    asyncio.run(cache_service.set(key, "{}", 300))
    task_queue._queues.clear()  # type: ignore[attr-defined]

    asyncio.run(grade_attempt(student, attempt.id, repos, audit_log, cache_service))

    assert asyncio.run(cache_service.get(key)) is None
    task = asyncio.run(task_queue.dequeue("audit"))
    assert task is not None and task.payload["action"] == "finish_exam"
    assert task.payload["user_id"] == str(student.user_id)
    assert str(attempt.id) in task.payload["description"]
    assert "with score 100.00" in task.payload["description"]


def test_audit_failure_does_not_undo_grade(repos: Repositories, student: Principal) -> None:
    _, attempt = _answered_attempt(repos, student, right=10)

    class BrokenAudit:
        async def record(self, event) -> None:
            raise ConnectionError("queue down")

    result = asyncio.run(grade_attempt(student, attempt.id, repos, BrokenAudit(), cache_service))

    assert result.score == 100.0
    stored = asyncio.run(repos.attempts.get_by_id(attempt.id))
    assert stored is not None and stored.state == "terminated"


def test_other_student_cannot_submit(repos: Repositories, student: Principal) -> None:
    _, attempt = _answered_attempt(repos, student, right=10)
    with pytest.raises(AttemptAccessDeniedError):
        asyncio.run(
            grade_attempt(principal("student"), attempt.id, repos, audit_log, cache_service)
        )


def test_staff_may_submit_on_behalf(repos: Repositories, student: Principal) -> None:
    _, attempt = _answered_attempt(repos, student, right=10)
    result = asyncio.run(
        grade_attempt(principal("instructor"), attempt.id, repos, audit_log, cache_service)
    )
    assert result.passed is True
