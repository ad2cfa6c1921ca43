"""Evaluation authoring.

Creating an evaluation, or changing how many questions or versions it
has, always goes together with generating its versions.  Both steps run
against the same Repositories, so with Postgres they share the request
transaction and an InsufficientQuestionsError leaves nothing behind.

Any create or edit can change who is eligible for a certificate, so
both drop every cached eligibility answer.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, replace
from typing import Any
from uuid import UUID

from exam_service.core.errors import EvaluationNotFoundError, InsufficientQuestionsError
from exam_service.models.evaluation import DEFAULT_PASSING_SCORE, Evaluation, ExamVersion
from exam_service.models.principal import Principal
from exam_service.repos.registry import Repositories
from exam_service.services.audit import AuditLog, build_event, record_safely
from exam_service.services.cache import CacheService
from exam_service.services.eligibility import invalidate_all_eligibility
from exam_service.services.version_generator import regenerate_versions

logger = logging.getLogger(__name__)

# Changing any of these invalidates the existing versions.
_SHAPE_FIELDS = frozenset({"questions_per_exam", "version_count", "lesson_id"})

_EDITABLE_FIELDS = frozenset(
    {
        "lesson_id",
        "title",
        "description",
        "questions_per_exam",
        "version_count",
        "max_attempts",
        "time_limit_minutes",
        "passing_score",
        "active",
    }
)


@dataclass(frozen=True, slots=True)
class EvaluationDraft:
    lesson_id: UUID
    title: str
    questions_per_exam: int
    version_count: int
    max_attempts: int = 0
    time_limit_minutes: int | None = None
    passing_score: float = DEFAULT_PASSING_SCORE
    active: bool = True
    description: str | None = None


class EvaluationValidationError(ValueError):
    pass


def _validate(evaluation: Evaluation) -> None:
    if not evaluation.title.strip():
        raise EvaluationValidationError("title must be non-empty")
    if evaluation.questions_per_exam < 1:
        raise EvaluationValidationError("questions_per_exam must be >= 1")
    if evaluation.version_count < 1:
        raise EvaluationValidationError("version_count must be >= 1")
    if evaluation.max_attempts < 0:
        raise EvaluationValidationError("max_attempts must be >= 0")
    if evaluation.time_limit_minutes is not None and evaluation.time_limit_minutes < 0:
        raise EvaluationValidationError("time_limit_minutes must be >= 0")
    if not 0 <= evaluation.passing_score <= 100:
        raise EvaluationValidationError("passing_score must be between 0 and 100")


async def _check_pool(evaluation: Evaluation, repos: Repositories) -> None:
    pool = await repos.questions.fetch_active_questions(evaluation.lesson_id)
    available = len({q.id for q in pool})
    if available < evaluation.questions_per_exam:
        logger.warning(
            "Evaluation rejected lesson=%s available=%d required=%d",
            evaluation.lesson_id,
            available,
            evaluation.questions_per_exam,
        )
        raise InsufficientQuestionsError(
            available=available, required=evaluation.questions_per_exam
        )


async def get_evaluation(evaluation_id: UUID, repos: Repositories) -> Evaluation:
    evaluation = await repos.evaluations.get_by_id(evaluation_id)
    if evaluation is None:
        raise EvaluationNotFoundError()
    return evaluation


async def create_evaluation(
    draft: EvaluationDraft,
    repos: Repositories,
    cache: CacheService,
    rng: random.Random | None = None,
) -> tuple[Evaluation, list[ExamVersion]]:
    evaluation = Evaluation.new(
        lesson_id=draft.lesson_id,
        title=draft.title.strip(),
        questions_per_exam=draft.questions_per_exam,
        version_count=draft.version_count,
        max_attempts=draft.max_attempts,
        time_limit_minutes=draft.time_limit_minutes,
        passing_score=draft.passing_score,
        active=draft.active,
        description=draft.description,
    )
    _validate(evaluation)
    await _check_pool(evaluation, repos)

    await repos.evaluations.add(evaluation)
    versions = await regenerate_versions(evaluation, repos, rng)
    await invalidate_all_eligibility(cache)
    logger.info(
        "Created evaluation id=%s lesson=%s versions=%d",
        evaluation.id,
        evaluation.lesson_id,
        len(versions),
    )
    return evaluation, versions


async def update_evaluation(
    evaluation_id: UUID,
    changes: dict[str, Any],
    repos: Repositories,
    cache: CacheService,
    rng: random.Random | None = None,
) -> tuple[Evaluation, list[ExamVersion] | None]:
    """Apply ``changes`` and regenerate versions if the exam shape changed.

    Returns the updated evaluation and the new versions, or None when
    the existing versions were kept.
    """
    current = await get_evaluation(evaluation_id, repos)
    unknown = set(changes) - _EDITABLE_FIELDS
    if unknown:
        raise EvaluationValidationError(f"unknown fields: {sorted(unknown)}")

    updated = replace(current, **changes)
    _validate(updated)

    reshaped = any(getattr(updated, f) != getattr(current, f) for f in _SHAPE_FIELDS)
    if reshaped:
        await _check_pool(updated, repos)

    await repos.evaluations.update(updated)
    versions = None
    if reshaped:
        versions = await regenerate_versions(updated, repos, rng)
    await invalidate_all_eligibility(cache)
    logger.info(
        "Updated evaluation id=%s fields=%s regenerated=%s",
        evaluation_id,
        sorted(changes),
        reshaped,
    )
    return updated, versions


async def regenerate_evaluation_versions(
    ctx: Principal,
    evaluation_id: UUID,
    repos: Repositories,
    audit: AuditLog,
    rng: random.Random | None = None,
) -> list[ExamVersion]:
    evaluation = await get_evaluation(evaluation_id, repos)
    versions = await regenerate_versions(evaluation, repos, rng)
    await record_safely(
        audit,
        build_event(
            ctx.user_id,
            "regenerate_versions",
            f"Regenerated {len(versions)} version(s) of evaluation {evaluation.id}",
            ip=ctx.ip,
        ),
    )
    return versions


async def list_versions(evaluation_id: UUID, repos: Repositories) -> list[ExamVersion]:
    await get_evaluation(evaluation_id, repos)
    return await repos.evaluations.list_versions(evaluation_id)
