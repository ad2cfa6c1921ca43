"""Grading: the single transition from in_progress to terminated.

``compute_grade`` is pure: given the evaluation, the attempt's version,
the questions and the recorded answers, it decides correctness per
question and the final score.  ``grade_attempt`` loads those inputs,
writes the per-answer correctness, then makes one conditional write
that only succeeds while the attempt is still in progress.  A second
grading, sequential or concurrent, fails with AlreadyGradedError and
leaves the first result untouched.

    score = round(correct / questions_in_version * 100, 2)

Questions missing from the bank and unanswered questions count as
wrong.  A submission after the time limit is still graded; it is only
flagged ``late``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, replace
from uuid import UUID

from exam_service.core.errors import AlreadyGradedError, EvaluationNotFoundError
from exam_service.core.metrics import ATTEMPTS_GRADED, EXAM_SCORE
from exam_service.models.attempt import AttemptAnswer, GradeResult
from exam_service.models.evaluation import Evaluation, ExamVersion
from exam_service.models.principal import Principal
from exam_service.models.question import Question
from exam_service.repos.registry import Repositories
from exam_service.services.answer_evaluator import evaluate
from exam_service.services.attempt_lifecycle import (
    load_attempt_for,
    load_version,
    now_epoch,
    version_questions,
)
from exam_service.services.audit import AuditLog, build_event, record_safely
from exam_service.services.cache import CacheService
from exam_service.services.eligibility import invalidate_eligibility

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class GradeOutcome:
    score: float
    passed: bool
    correct_count: int
    total_questions: int
    late: bool
    graded_answers: list[AttemptAnswer]


def compute_grade(
    evaluation: Evaluation,
    version: ExamVersion,
    questions: Iterable[Question],
    answers: Iterable[AttemptAnswer],
    finished_at: int,
    started_at: int,
) -> GradeOutcome:
    by_question = {q.id: q for q in questions}
    by_answer = {a.question_id: a for a in answers}

    correct_count = 0
    graded: list[AttemptAnswer] = []
    for qid in version.question_ids:
        question = by_question.get(qid)
        answer = by_answer.get(qid)
        correct = (
            question is not None
            and answer is not None
            and evaluate(question, answer.submitted_value)
        )
        if correct:
            correct_count += 1
        if answer is not None:
            graded.append(replace(answer, correct=correct))

    total = len(version.question_ids)
    score = round(correct_count / total * 100, 2) if total else 0.0
    deadline = evaluation.deadline_for(started_at)
    return GradeOutcome(
        score=score,
        passed=score >= evaluation.passing_score,
        correct_count=correct_count,
        total_questions=total,
        late=deadline is not None and finished_at > deadline,
        graded_answers=graded,
    )


async def grade_attempt(
    ctx: Principal,
    attempt_id: UUID,
    repos: Repositories,
    audit: AuditLog,
    cache: CacheService,
    now: int | None = None,
) -> GradeResult:
    attempt = await load_attempt_for(ctx, attempt_id, repos)
    if attempt.is_terminated:
        logger.warning("Rejected regrade attempt=%s user=%s", attempt.id, ctx.user_id)
        raise AlreadyGradedError()

    evaluation = await repos.evaluations.get_by_id(attempt.evaluation_id)
    if evaluation is None:
        raise EvaluationNotFoundError()
    version = await load_version(attempt, repos)
    questions = await version_questions(version, repos)
    answers = await repos.attempts.list_answers(attempt.id)

    finished_at = now if now is not None else now_epoch()
    outcome = compute_grade(
        evaluation, version, questions, answers, finished_at, attempt.started_at
    )

    await repos.attempts.upsert_answers(outcome.graded_answers)
    terminated = await repos.attempts.terminate(
        attempt.id,
        finished_at=finished_at,
        score=outcome.score,
        passed=outcome.passed,
    )
    if terminated is None:
        # Another request graded it between our read and this write
        logger.warning("Lost grading race attempt=%s", attempt.id)
        raise AlreadyGradedError()

    ATTEMPTS_GRADED.labels(passed=str(outcome.passed).lower()).inc()
    EXAM_SCORE.observe(outcome.score)
    logger.info(
        "Attempt graded id=%s user=%s score=%.2f passed=%s late=%s",
        attempt.id,
        attempt.user_id,
        outcome.score,
        outcome.passed,
        outcome.late,
    )

    await record_safely(
        audit,
        build_event(
            ctx.user_id,
            "finish_exam",
            f"Finished attempt {attempt.id} (number {attempt.attempt_number}) "
            f"of evaluation '{evaluation.title}' with score {outcome.score:.2f}",
            ip=ctx.ip,
        ),
    )
    await invalidate_eligibility(cache, attempt.user_id)

    return GradeResult(
        attempt_id=attempt.id,
        score=outcome.score,
        passed=outcome.passed,
        correct_count=outcome.correct_count,
        total_questions=outcome.total_questions,
        late=outcome.late,
        finished_at=finished_at,
    )
