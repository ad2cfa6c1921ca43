from __future__ import annotations

import asyncio
import random
import uuid
from dataclasses import replace

import pytest

from exam_service.core.errors import (
    AlreadyGradedError,
    AttemptAccessDeniedError,
    AttemptInProgressError,
    AttemptNotFoundError,
    AttemptsExhaustedError,
    EvaluationNotFoundError,
    InactiveEvaluationError,
    NotEnrolledError,
    QuestionNotInVersionError,
    VersionNotFoundError,
)
from exam_service.models.attempt import Attempt
from exam_service.models.principal import Principal
from exam_service.repos.registry import Repositories
from exam_service.services.attempt_lifecycle import (
    get_attempt_detail,
    get_attempt_questions,
    list_available_evaluations,
    record_answer,
    start_attempt,
)
from exam_service.services.audit import audit_log
from exam_service.services.cache import cache_service
from exam_service.services.grading import grade_attempt
from exam_service.services.task_queue import task_queue
from tests.conftest import principal, seed_course, seed_evaluation


def _start(ctx: Principal, evaluation_id: uuid.UUID, repos: Repositories, **kw):
    return asyncio.run(start_attempt(ctx, evaluation_id, repos, audit_log, **kw))


def _finish(repos: Repositories, attempt: Attempt, score: float = 50.0) -> None:
    asyncio.run(
        repos.attempts.terminate(
            attempt.id, finished_at=attempt.started_at + 60, score=score, passed=score >= 60
        )
    )


# ---- start: happy path ----


def test_start_creates_numbered_attempt(repos: Repositories, student: Principal) -> None:
    course = seed_course(repos, enroll=[student.user_id])
    evaluation, versions = seed_evaluation(repos, course.lesson_id, time_limit_minutes=30)

    started = _start(student, evaluation.id, repos, now=1_000)

    assert started.attempt.attempt_number == 1
    assert started.attempt.state == "in_progress"
    assert started.attempt.started_at == 1_000
    assert started.attempt.version_id == versions[0].id
    assert started.deadline == 1_000 + 30 * 60
    assert started.time_limit_minutes == 30


def test_start_without_time_limit_has_no_deadline(
    repos: Repositories, student: Principal
) -> None:
    course = seed_course(repos, enroll=[student.user_id])
    evaluation, _ = seed_evaluation(repos, course.lesson_id)
    assert _start(student, evaluation.id, repos).deadline is None


def test_start_emits_audit_event(repos: Repositories, student: Principal) -> None:
    course = seed_course(repos, enroll=[student.user_id])
    evaluation, _ = seed_evaluation(repos, course.lesson_id)

    started = _start(student, evaluation.id, repos)

    task = asyncio.run(task_queue.dequeue("audit"))
    assert task is not None
    assert task.payload["action"] == "start_exam"
    assert task.payload["user_id"] == str(student.user_id)
    assert str(started.attempt.id) in task.payload["description"]


def test_clock_at_epoch_zero_is_used(repos: Repositories, student: Principal) -> None:
    course = seed_course(repos, enroll=[student.user_id])
    evaluation, versions = seed_evaluation(repos, course.lesson_id)
    qid = versions[0].question_ids[0]

    async def _run():
        started = await start_attempt(student, evaluation.id, repos, audit_log, now=0)
        await record_answer(student, started.attempt.id, qid, "a0", repos, now=0)
        answers = await repos.attempts.list_answers(started.attempt.id)
        await grade_attempt(student, started.attempt.id, repos, audit_log, cache_service, now=0)
        return started.attempt, answers, await repos.attempts.get_by_id(started.attempt.id)

    attempt, answers, graded = asyncio.run(_run())

    assert attempt.started_at == 0
    assert [a.answered_at for a in answers] == [0]
    assert graded is not None and graded.finished_at == 0


# ---- start: gates, in order ----


def test_start_unknown_evaluation(repos: Repositories, student: Principal) -> None:
    with pytest.raises(EvaluationNotFoundError):
        _start(student, uuid.uuid4(), repos)


def test_inactive_checked_before_enrollment(repos: Repositories, student: Principal) -> None:
    course = seed_course(repos)  # student not enrolled
    evaluation, _ = seed_evaluation(repos, course.lesson_id)
    asyncio.run(repos.evaluations.update(replace(evaluation, active=False)))

    with pytest.raises(InactiveEvaluationError):
        _start(student, evaluation.id, repos)


def test_start_requires_enrollment(repos: Repositories, student: Principal) -> None:
    course = seed_course(repos)
    evaluation, _ = seed_evaluation(repos, course.lesson_id)
    with pytest.raises(NotEnrolledError):
        _start(student, evaluation.id, repos)


def test_start_rejects_second_concurrent_attempt(
    repos: Repositories, student: Principal
) -> None:
    course = seed_course(repos, enroll=[student.user_id])
    evaluation, _ = seed_evaluation(repos, course.lesson_id, max_attempts=1)
    _start(student, evaluation.id, repos)

    with pytest.raises(AttemptInProgressError):
        _start(student, evaluation.id, repos)


def test_racing_starts_leave_one_attempt(repos: Repositories, student: Principal) -> None:
    course = seed_course(repos, enroll=[student.user_id])
    evaluation, _ = seed_evaluation(repos, course.lesson_id)

    async def _race():
        return await asyncio.gather(
            start_attempt(student, evaluation.id, repos, audit_log),
            start_attempt(student, evaluation.id, repos, audit_log),
            return_exceptions=True,
        )

    results = asyncio.run(_race())
    assert sum(isinstance(r, AttemptInProgressError) for r in results) == 1
    in_progress = asyncio.run(
        repos.attempts.list_for_user(student.user_id, [evaluation.id], state="in_progress")
    )
    assert len(in_progress) == 1


def test_attempt_budget_is_enforced(repos: Repositories, student: Principal) -> None:
    course = seed_course(repos, enroll=[student.user_id])
    evaluation, _ = seed_evaluation(repos, course.lesson_id, max_attempts=2)

    for _ in range(2):
        _finish(repos, _start(student, evaluation.id, repos).attempt)

    with pytest.raises(AttemptsExhaustedError):
        _start(student, evaluation.id, repos)


def test_unlimited_attempts_never_exhaust(repos: Repositories, student: Principal) -> None:
    course = seed_course(repos, enroll=[student.user_id])
    evaluation, _ = seed_evaluation(repos, course.lesson_id, max_attempts=0)

    for number in range(1, 6):
        started = _start(student, evaluation.id, repos)
        assert started.attempt.attempt_number == number
        _finish(repos, started.attempt)


def test_start_without_versions(repos: Repositories, student: Principal) -> None:
    course = seed_course(repos, enroll=[student.user_id])
    evaluation, _ = seed_evaluation(repos, course.lesson_id)
    asyncio.run(repos.evaluations.replace_versions(evaluation.id, []))

    with pytest.raises(VersionNotFoundError):
        _start(student, evaluation.id, repos)


# ---- version choice ----


def test_unused_versions_are_served_first(repos: Repositories, student: Principal) -> None:
    course = seed_course(repos, enroll=[student.user_id])
    evaluation, versions = seed_evaluation(
        repos, course.lesson_id, questions_per_exam=5, version_count=3
    )
    rng = random.Random(99)

    served = []
    for _ in range(3):
        started = _start(student, evaluation.id, repos, rng=rng)
        served.append(started.attempt.version_id)
        _finish(repos, started.attempt)

    assert sorted(served) == sorted(v.id for v in versions)

    # All used: any version may come back
    fourth = _start(student, evaluation.id, repos, rng=rng)
    assert fourth.attempt.version_id in {v.id for v in versions}


# ---- available evaluations ----


def test_list_available_reports_progress(repos: Repositories, student: Principal) -> None:
    course = seed_course(repos, enroll=[student.user_id])
    evaluation, _ = seed_evaluation(repos, course.lesson_id, max_attempts=2)
    other_course = seed_course(repos)
    seed_evaluation(repos, other_course.lesson_id, title="Not mine")

    _finish(repos, _start(student, evaluation.id, repos).attempt)
    current = _start(student, evaluation.id, repos).attempt

    (item,) = asyncio.run(list_available_evaluations(student, repos))
    assert item.evaluation.id == evaluation.id
    assert item.attempts_made == 2
    assert item.remaining_attempts == 1
    assert item.in_progress is not None and item.in_progress.id == current.id
    assert item.last_attempt is not None and item.last_attempt.id == current.id
    assert item.can_start is False


def test_list_available_filters_by_lesson(repos: Repositories, student: Principal) -> None:
    course = seed_course(repos, enroll=[student.user_id])
    seed_evaluation(repos, course.lesson_id)
    assert asyncio.run(list_available_evaluations(student, repos, lesson_id=uuid.uuid4())) == []


# ---- questions and answers ----


def test_questions_follow_version_order_without_answers(
    repos: Repositories, student: Principal
) -> None:
    course = seed_course(repos, enroll=[student.user_id], question_count=6)
    evaluation, versions = seed_evaluation(
        repos, course.lesson_id, questions_per_exam=4, version_count=1
    )
    attempt = _start(student, evaluation.id, repos).attempt

    shown = asyncio.run(get_attempt_questions(student, attempt.id, repos))

    assert [q.question_id for q in shown] == list(versions[0].question_ids)
    assert [q.position for q in shown] == [1, 2, 3, 4]
    assert not hasattr(shown[0], "correct_answer")


def test_record_answer_is_idempotent_per_question(
    repos: Repositories, student: Principal
) -> None:
    course = seed_course(repos, enroll=[student.user_id])
    evaluation, versions = seed_evaluation(repos, course.lesson_id)
    attempt = _start(student, evaluation.id, repos).attempt
    qid = versions[0].question_ids[0]

    asyncio.run(record_answer(student, attempt.id, qid, "first", repos))
    asyncio.run(record_answer(student, attempt.id, qid, "second", repos))

    answers = asyncio.run(repos.attempts.list_answers(attempt.id))
    assert [(a.question_id, a.submitted_value, a.correct) for a in answers] == [
        (qid, "second", None)
    ]


def test_record_answer_rejects_foreign_question(
    repos: Repositories, student: Principal
) -> None:
    course = seed_course(repos, enroll=[student.user_id])
    evaluation, _ = seed_evaluation(repos, course.lesson_id)
    attempt = _start(student, evaluation.id, repos).attempt

    with pytest.raises(QuestionNotInVersionError):
        asyncio.run(record_answer(student, attempt.id, uuid.uuid4(), "x", repos))


def test_record_answer_after_grading(repos: Repositories, student: Principal) -> None:
    course = seed_course(repos, enroll=[student.user_id])
    evaluation, versions = seed_evaluation(repos, course.lesson_id)
    attempt = _start(student, evaluation.id, repos).attempt
    _finish(repos, attempt)

    with pytest.raises(AlreadyGradedError):
        asyncio.run(
            record_answer(student, attempt.id, versions[0].question_ids[0], "x", repos)
        )


def test_only_owner_records_answers(repos: Repositories, student: Principal) -> None:
    course = seed_course(repos, enroll=[student.user_id])
    evaluation, versions = seed_evaluation(repos, course.lesson_id)
    attempt = _start(student, evaluation.id, repos).attempt
    qid = versions[0].question_ids[0]

    with pytest.raises(AttemptAccessDeniedError):
        asyncio.run(record_answer(principal("instructor"), attempt.id, qid, "x", repos))


# ---- detail and ownership ----


def test_detail_hides_correct_answers_until_terminated(
    repos: Repositories, student: Principal
) -> None:
    course = seed_course(repos, enroll=[student.user_id])
    evaluation, _ = seed_evaluation(repos, course.lesson_id)
    attempt = _start(student, evaluation.id, repos).attempt

    before = asyncio.run(get_attempt_detail(student, attempt.id, repos))
    assert before.evaluation_title == evaluation.title
    assert all(a.correct_answer is None for a in before.answers)

    _finish(repos, attempt)
    after = asyncio.run(get_attempt_detail(student, attempt.id, repos))
    assert all(a.correct_answer is not None for a in after.answers)


def test_other_students_cannot_read_attempt(repos: Repositories, student: Principal) -> None:
    course = seed_course(repos, enroll=[student.user_id])
    evaluation, _ = seed_evaluation(repos, course.lesson_id)
    attempt = _start(student, evaluation.id, repos).attempt

    with pytest.raises(AttemptAccessDeniedError):
        asyncio.run(get_attempt_detail(principal("student"), attempt.id, repos))
    # Staff may
    asyncio.run(get_attempt_detail(principal("admin"), attempt.id, repos))


def test_unknown_attempt(repos: Repositories, student: Principal) -> None:
    with pytest.raises(AttemptNotFoundError):
        asyncio.run(get_attempt_questions(student, uuid.uuid4(), repos))
