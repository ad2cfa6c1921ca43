"""Evaluation endpoints: authoring, versions, starting attempts, reports.

Staff (admin, instructor) author evaluations and read reports; any
authenticated user may list what they can take and start an attempt.
Domain failures are ExamError subclasses and are turned into JSON
responses by the handler installed in main.py.
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from exam_service.api.dependencies import Audit, Cache, CurrentUser, Repos, StaffUser
from exam_service.models.attempt import Attempt, AttemptState
from exam_service.models.evaluation import DEFAULT_PASSING_SCORE, Evaluation, ExamVersion
from exam_service.services import attempt_lifecycle, evaluations, reporting

router = APIRouter(prefix="/v1/evaluations", tags=["evaluations"])

_NULLABLE_FIELDS = frozenset({"description", "time_limit_minutes"})


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class EvaluationIn(BaseModel):
    lesson_id: UUID
    title: str = Field(min_length=1)
    description: str | None = None
    questions_per_exam: int = Field(ge=1)
    version_count: int = Field(ge=1)
    max_attempts: int = Field(default=0, ge=0)  # 0 = unlimited
    time_limit_minutes: int | None = Field(default=None, ge=0)
    passing_score: float = Field(default=DEFAULT_PASSING_SCORE, ge=0, le=100)
    active: bool = True


class EvaluationPatch(BaseModel):
    lesson_id: UUID | None = None
    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    questions_per_exam: int | None = Field(default=None, ge=1)
    version_count: int | None = Field(default=None, ge=1)
    max_attempts: int | None = Field(default=None, ge=0)
    time_limit_minutes: int | None = Field(default=None, ge=0)
    passing_score: float | None = Field(default=None, ge=0, le=100)
    active: bool | None = None


class VersionOut(BaseModel):
    id: UUID
    version_number: int
    question_ids: list[UUID]


class EvaluationOut(BaseModel):
    id: UUID
    lesson_id: UUID
    title: str
    description: str | None
    questions_per_exam: int
    version_count: int
    max_attempts: int
    time_limit_minutes: int | None
    passing_score: float
    active: bool
    versions: list[VersionOut] | None = None


class AttemptOut(BaseModel):
    id: UUID
    user_id: UUID
    evaluation_id: UUID
    version_id: UUID
    attempt_number: int
    state: str
    started_at: int
    finished_at: int | None
    score: float | None
    passed: bool | None


class AttemptStartOut(BaseModel):
    attempt: AttemptOut
    version_number: int
    time_limit_minutes: int | None
    deadline: int | None


class AvailableEvaluationOut(BaseModel):
    evaluation: EvaluationOut
    attempts_made: int
    remaining_attempts: int | None
    last_attempt: AttemptOut | None
    in_progress: AttemptOut | None
    can_start: bool


class SummaryOut(BaseModel):
    evaluation_id: UUID
    attempts: int
    average: float
    passed: int
    failed: int
    distribution: dict[str, int]
    attempts_per_user: dict[str, int]
    average_duration_seconds: float


def version_out(v: ExamVersion) -> VersionOut:
    return VersionOut(
        id=v.id, version_number=v.version_number, question_ids=list(v.question_ids)
    )


def evaluation_out(
    e: Evaluation, versions: list[ExamVersion] | None = None
) -> EvaluationOut:
    return EvaluationOut(
        id=e.id,
        lesson_id=e.lesson_id,
        title=e.title,
        description=e.description,
        questions_per_exam=e.questions_per_exam,
        version_count=e.version_count,
        max_attempts=e.max_attempts,
        time_limit_minutes=e.time_limit_minutes,
        passing_score=e.passing_score,
        active=e.active,
        versions=[version_out(v) for v in versions] if versions is not None else None,
    )


def attempt_out(a: Attempt) -> AttemptOut:
    return AttemptOut(
        id=a.id,
        user_id=a.user_id,
        evaluation_id=a.evaluation_id,
        version_id=a.version_id,
        attempt_number=a.attempt_number,
        state=a.state,
        started_at=a.started_at,
        finished_at=a.finished_at,
        score=a.score,
        passed=a.passed,
    )


# ---------------------------------------------------------------------------
# Authoring (staff)
# ---------------------------------------------------------------------------


@router.post("", response_model=EvaluationOut, status_code=status.HTTP_201_CREATED)
async def create_evaluation(
    body: EvaluationIn, _staff: StaffUser, repos: Repos, cache: Cache
) -> EvaluationOut:
    try:
        evaluation, versions = await evaluations.create_evaluation(
            evaluations.EvaluationDraft(**body.model_dump()), repos, cache
        )
    except evaluations.EvaluationValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)
        ) from None
    return evaluation_out(evaluation, versions)


@router.patch("/{evaluation_id}", response_model=EvaluationOut)
async def update_evaluation(
    evaluation_id: UUID,
    body: EvaluationPatch,
    _staff: StaffUser,
    repos: Repos,
    cache: Cache,
) -> EvaluationOut:
    # Explicit nulls only clear the fields that are nullable
    changes = {
        k: v
        for k, v in body.model_dump(exclude_unset=True).items()
        if v is not None or k in _NULLABLE_FIELDS
    }
    try:
        evaluation, versions = await evaluations.update_evaluation(
            evaluation_id, changes, repos, cache
        )
    except evaluations.EvaluationValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)
        ) from None
    return evaluation_out(evaluation, versions)


@router.post("/{evaluation_id}/versions", response_model=list[VersionOut])
async def regenerate_versions(
    evaluation_id: UUID, staff: StaffUser, repos: Repos, audit: Audit
) -> list[VersionOut]:
    versions = await evaluations.regenerate_evaluation_versions(
        staff, evaluation_id, repos, audit
    )
    return [version_out(v) for v in versions]


@router.get("/{evaluation_id}/versions", response_model=list[VersionOut])
async def list_versions(
    evaluation_id: UUID, _staff: StaffUser, repos: Repos
) -> list[VersionOut]:
    return [version_out(v) for v in await evaluations.list_versions(evaluation_id, repos)]


# ---------------------------------------------------------------------------
# Students
# ---------------------------------------------------------------------------


@router.get("/available", response_model=list[AvailableEvaluationOut])
async def list_available(
    principal: CurrentUser,
    repos: Repos,
    lesson_id: UUID | None = None,
) -> list[AvailableEvaluationOut]:
    items = await attempt_lifecycle.list_available_evaluations(
        principal, repos, lesson_id=lesson_id
    )
    return [
        AvailableEvaluationOut(
            evaluation=evaluation_out(item.evaluation),
            attempts_made=item.attempts_made,
            remaining_attempts=item.remaining_attempts,
            last_attempt=attempt_out(item.last_attempt) if item.last_attempt else None,
            in_progress=attempt_out(item.in_progress) if item.in_progress else None,
            can_start=item.can_start,
        )
        for item in items
    ]


@router.post(
    "/{evaluation_id}/attempts",
    response_model=AttemptStartOut,
    status_code=status.HTTP_201_CREATED,
)
async def start_attempt(
    evaluation_id: UUID, principal: CurrentUser, repos: Repos, audit: Audit
) -> AttemptStartOut:
    started = await attempt_lifecycle.start_attempt(
        principal, evaluation_id, repos, audit
    )
    return AttemptStartOut(
        attempt=attempt_out(started.attempt),
        version_number=started.version_number,
        time_limit_minutes=started.time_limit_minutes,
        deadline=started.deadline,
    )


# ---------------------------------------------------------------------------
# Reports (staff)
# ---------------------------------------------------------------------------


@router.get("/{evaluation_id}/attempts", response_model=list[AttemptOut])
async def list_attempts(
    evaluation_id: UUID,
    _staff: StaffUser,
    repos: Repos,
    user_id: UUID | None = None,
    state: AttemptState | None = None,
    started_from: Annotated[int | None, Query(ge=0)] = None,
    started_to: Annotated[int | None, Query(ge=0)] = None,
) -> list[AttemptOut]:
    attempts = await reporting.list_attempts(
        evaluation_id,
        repos,
        user_id=user_id,
        state=state,
        started_from=started_from,
        started_to=started_to,
    )
    return [attempt_out(a) for a in attempts]


@router.get("/{evaluation_id}/summary", response_model=SummaryOut)
async def summarize(evaluation_id: UUID, _staff: StaffUser, repos: Repos) -> SummaryOut:
    summary = await reporting.summarize_evaluation(evaluation_id, repos)
    return SummaryOut(
        evaluation_id=summary.evaluation_id,
        attempts=summary.attempts,
        average=summary.average,
        passed=summary.passed,
        failed=summary.failed,
        distribution=summary.distribution,
        attempts_per_user={str(k): v for k, v in summary.attempts_per_user.items()},
        average_duration_seconds=summary.average_duration_seconds,
    )
