"""Attempt lifecycle: NotStarted → InProgress → Terminated.

Starting an attempt runs a fixed sequence of gates, each with its own
error, before a version is picked and the attempt row is written:

    1. evaluation exists              EvaluationNotFoundError
    2. evaluation is active           InactiveEvaluationError
    3. user enrolled in the course    NotEnrolledError
    4. no attempt in progress         AttemptInProgressError
    5. attempt budget not exhausted   AttemptsExhaustedError
    6. evaluation has versions        VersionNotFoundError

Gate 4 is checked here for a clear error, but the storage layer is what
actually guarantees a single in-progress attempt per user and
evaluation: two concurrent starts both pass the check, only one insert
wins.

While in progress the student records answers one question at a time.
Grading (services/grading.py) is the only way out of InProgress, and
nothing leaves Terminated.
"""

from __future__ import annotations

import datetime
import logging
import random
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from exam_service.core.errors import (
    AlreadyGradedError,
    AttemptAccessDeniedError,
    AttemptInProgressError,
    AttemptNotFoundError,
    AttemptsExhaustedError,
    EvaluationNotFoundError,
    ExamError,
    InactiveEvaluationError,
    NotEnrolledError,
    QuestionNotInVersionError,
    VersionNotFoundError,
)
from exam_service.core.metrics import ATTEMPTS_REJECTED, ATTEMPTS_STARTED
from exam_service.models.attempt import Attempt, AttemptAnswer, AttemptStart
from exam_service.models.evaluation import Evaluation, ExamVersion
from exam_service.models.principal import Principal
from exam_service.models.question import Question, QuestionOption, QuestionType
from exam_service.repos.registry import Repositories
from exam_service.services.audit import AuditLog, build_event, record_safely

logger = logging.getLogger(__name__)


def now_epoch() -> int:
    return int(datetime.datetime.now(datetime.UTC).timestamp())


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AvailableEvaluation:
    evaluation: Evaluation
    attempts_made: int
    remaining_attempts: int | None  # None = unlimited
    last_attempt: Attempt | None
    in_progress: Attempt | None
    can_start: bool


@dataclass(frozen=True, slots=True)
class AttemptQuestion:
    """A question as shown to the student.  Carries no correct answer."""

    position: int  # 1-based, version order
    question_id: UUID
    statement: str
    type: QuestionType
    options: tuple[QuestionOption, ...]
    difficulty: int
    submitted_value: Any = None


@dataclass(frozen=True, slots=True)
class AnswerDetail:
    position: int
    question_id: UUID
    statement: str
    type: QuestionType
    submitted_value: Any
    correct: bool | None
    correct_answer: Any = None  # only filled once the attempt is terminated


@dataclass(frozen=True, slots=True)
class AttemptDetail:
    attempt: Attempt
    evaluation_title: str
    answers: list[AnswerDetail]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def load_attempt_for(
    ctx: Principal,
    attempt_id: UUID,
    repos: Repositories,
    *,
    owner_only: bool = False,
) -> Attempt:
    """Fetch an attempt the caller may see.

    Staff (admin, instructor) may read any attempt; ``owner_only`` is
    for operations that act on the attempt as the student.
    """
    attempt = await repos.attempts.get_by_id(attempt_id)
    if attempt is None:
        raise AttemptNotFoundError()
    allowed = (
        attempt.user_id == ctx.user_id if owner_only else ctx.can_access(attempt.user_id)
    )
    if not allowed:
        logger.warning(
            "Attempt access denied user=%s attempt=%s owner=%s",
            ctx.user_id,
            attempt_id,
            attempt.user_id,
        )
        raise AttemptAccessDeniedError()
    return attempt


async def load_version(attempt: Attempt, repos: Repositories) -> ExamVersion:
    version = await repos.evaluations.get_version(attempt.version_id)
    if version is None:
        raise VersionNotFoundError(
            f"version {attempt.version_id} of attempt {attempt.id} no longer exists"
        )
    return version


async def version_questions(
    version: ExamVersion, repos: Repositories
) -> list[Question]:
    """The version's questions, reordered by the version's sequence."""
    fetched = await repos.questions.fetch_questions_by_ids(list(version.question_ids))
    by_id = {q.id: q for q in fetched}
    return [by_id[qid] for qid in version.question_ids if qid in by_id]


def _pick_version(
    versions: list[ExamVersion], prior: list[Attempt], rng: random.Random
) -> ExamVersion:
    used = {a.version_id for a in prior}
    unused = [v for v in versions if v.id not in used]
    return rng.choice(unused or versions)


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


async def _start(
    ctx: Principal,
    evaluation_id: UUID,
    repos: Repositories,
    rng: random.Random,
    now: int,
) -> tuple[AttemptStart, Evaluation]:
    evaluation = await repos.evaluations.get_by_id(evaluation_id)
    if evaluation is None:
        raise EvaluationNotFoundError()
    if not evaluation.active:
        raise InactiveEvaluationError()

    course_id = await repos.catalog.course_id_for_lesson(evaluation.lesson_id)
    if course_id is None or not await repos.enrollments.is_enrolled(
        ctx.user_id, course_id
    ):
        raise NotEnrolledError()

    prior = await repos.attempts.list_for_user(ctx.user_id, [evaluation.id])
    if any(a.state == "in_progress" for a in prior):
        raise AttemptInProgressError()

    finished = sum(1 for a in prior if a.is_terminated)
    if evaluation.has_attempt_limit and finished >= evaluation.max_attempts:
        raise AttemptsExhaustedError(
            f"{finished} of {evaluation.max_attempts} attempts used"
        )

    versions = await repos.evaluations.list_versions(evaluation.id)
    if not versions:
        raise VersionNotFoundError()

    version = _pick_version(versions, prior, rng)
    attempt = Attempt.new(
        user_id=ctx.user_id,
        evaluation_id=evaluation.id,
        version_id=version.id,
        attempt_number=len(prior) + 1,
        started_at=now,
    )
    await repos.attempts.create_in_progress(attempt)

    started = AttemptStart(
        attempt=attempt,
        version_number=version.version_number,
        time_limit_minutes=evaluation.time_limit_minutes or None,
        deadline=evaluation.deadline_for(now),
    )
    return started, evaluation


async def start_attempt(
    ctx: Principal,
    evaluation_id: UUID,
    repos: Repositories,
    audit: AuditLog,
    rng: random.Random | None = None,
    now: int | None = None,
) -> AttemptStart:
    try:
        started, evaluation = await _start(
            ctx,
            evaluation_id,
            repos,
            rng or random.Random(),
            now if now is not None else now_epoch(),
        )
    except ExamError as e:
        ATTEMPTS_REJECTED.labels(reason=e.code).inc()
        logger.warning(
            "Attempt start rejected user=%s evaluation=%s reason=%s",
            ctx.user_id,
            evaluation_id,
            e.code,
        )
        raise

    attempt = started.attempt
    ATTEMPTS_STARTED.inc()
    logger.info(
        "Attempt started id=%s user=%s evaluation=%s number=%d version=%d",
        attempt.id,
        attempt.user_id,
        attempt.evaluation_id,
        attempt.attempt_number,
        started.version_number,
    )
    await record_safely(
        audit,
        build_event(
            ctx.user_id,
            "start_exam",
            f"Started attempt {attempt.id} (number {attempt.attempt_number}) "
            f"of evaluation '{evaluation.title}' (version {started.version_number})",
            ip=ctx.ip,
        ),
    )
    return started


async def list_available_evaluations(
    ctx: Principal,
    repos: Repositories,
    lesson_id: UUID | None = None,
) -> list[AvailableEvaluation]:
    lesson_ids: list[UUID] = []
    for course_id in await repos.enrollments.list_course_ids(ctx.user_id):
        lesson_ids.extend(await repos.catalog.lesson_ids_for_course(course_id))
    if lesson_id is not None:
        lesson_ids = [lid for lid in lesson_ids if lid == lesson_id]

    evaluations = await repos.evaluations.list_active_by_lessons(lesson_ids)
    attempts = await repos.attempts.list_for_user(
        ctx.user_id, [e.id for e in evaluations]
    )

    available = []
    for evaluation in sorted(evaluations, key=lambda e: e.title):
        mine = [a for a in attempts if a.evaluation_id == evaluation.id]
        in_progress = next((a for a in mine if a.state == "in_progress"), None)
        finished = sum(1 for a in mine if a.is_terminated)
        remaining = (
            max(evaluation.max_attempts - finished, 0)
            if evaluation.has_attempt_limit
            else None
        )
        available.append(
            AvailableEvaluation(
                evaluation=evaluation,
                attempts_made=len(mine),
                remaining_attempts=remaining,
                last_attempt=mine[-1] if mine else None,
                in_progress=in_progress,
                can_start=in_progress is None and remaining != 0,
            )
        )
    return available


async def get_attempt_questions(
    ctx: Principal, attempt_id: UUID, repos: Repositories
) -> list[AttemptQuestion]:
    attempt = await load_attempt_for(ctx, attempt_id, repos)
    version = await load_version(attempt, repos)
    answers = {a.question_id: a for a in await repos.attempts.list_answers(attempt.id)}

    shown = []
    for position, question in enumerate(await version_questions(version, repos), 1):
        if not question.active:
            continue
        answer = answers.get(question.id)
        shown.append(
            AttemptQuestion(
                position=position,
                question_id=question.id,
                statement=question.statement,
                type=question.type,
                options=question.options,
                difficulty=question.difficulty,
                submitted_value=answer.submitted_value if answer else None,
            )
        )
    return shown


async def record_answer(
    ctx: Principal,
    attempt_id: UUID,
    question_id: UUID,
    value: Any,
    repos: Repositories,
    now: int | None = None,
) -> AttemptAnswer:
    """Store (or overwrite) the student's answer to one question."""
    attempt = await load_attempt_for(ctx, attempt_id, repos, owner_only=True)
    if attempt.is_terminated:
        raise AlreadyGradedError("answers can't change after the attempt is graded")

    version = await load_version(attempt, repos)
    if question_id not in version.question_ids:
        raise QuestionNotInVersionError()

    answer = AttemptAnswer(
        attempt_id=attempt.id,
        question_id=question_id,
        submitted_value=value,
        answered_at=now if now is not None else now_epoch(),
    )
    await repos.attempts.upsert_answers([answer])
    logger.debug("Answer recorded attempt=%s question=%s", attempt.id, question_id)
    return answer


async def get_attempt_detail(
    ctx: Principal, attempt_id: UUID, repos: Repositories
) -> AttemptDetail:
    attempt = await load_attempt_for(ctx, attempt_id, repos)
    evaluation = await repos.evaluations.get_by_id(attempt.evaluation_id)
    if evaluation is None:
        raise EvaluationNotFoundError()
    version = await load_version(attempt, repos)
    answers = {a.question_id: a for a in await repos.attempts.list_answers(attempt.id)}
    reveal = attempt.is_terminated

    details = []
    for position, question in enumerate(await version_questions(version, repos), 1):
        answer = answers.get(question.id)
        details.append(
            AnswerDetail(
                position=position,
                question_id=question.id,
                statement=question.statement,
                type=question.type,
                submitted_value=answer.submitted_value if answer else None,
                correct=answer.correct if answer else None,
                correct_answer=question.correct_answer if reveal else None,
            )
        )
    return AttemptDetail(
        attempt=attempt, evaluation_title=evaluation.title, answers=details
    )
