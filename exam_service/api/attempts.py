"""Attempt endpoints: questions, answers, submission, review.

The student who owns an attempt answers and submits it; staff may read
and submit any attempt.  Correct answers only appear in the detail view
once the attempt is graded.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter
from pydantic import BaseModel

from exam_service.api.dependencies import Audit, Cache, CurrentUser, Repos
from exam_service.api.evaluations import AttemptOut, attempt_out
from exam_service.services import attempt_lifecycle, grading

router = APIRouter(prefix="/v1/attempts", tags=["attempts"])


class OptionOut(BaseModel):
    value: str
    label: str


class QuestionOut(BaseModel):
    position: int
    question_id: UUID
    statement: str
    type: str
    options: list[OptionOut]
    difficulty: int
    submitted_value: Any = None


class AnswerIn(BaseModel):
    value: Any


class AnswerOut(BaseModel):
    attempt_id: UUID
    question_id: UUID
    submitted_value: Any
    answered_at: int


class AnswerDetailOut(BaseModel):
    position: int
    question_id: UUID
    statement: str
    type: str
    submitted_value: Any
    correct: bool | None
    correct_answer: Any = None


class AttemptDetailOut(BaseModel):
    attempt: AttemptOut
    evaluation_title: str
    answers: list[AnswerDetailOut]


class GradeOut(BaseModel):
    attempt_id: UUID
    score: float
    passed: bool
    correct_count: int
    total_questions: int
    late: bool
    finished_at: int


@router.get("/{attempt_id}", response_model=AttemptDetailOut)
async def get_attempt(
    attempt_id: UUID, principal: CurrentUser, repos: Repos
) -> AttemptDetailOut:
    detail = await attempt_lifecycle.get_attempt_detail(principal, attempt_id, repos)
    return AttemptDetailOut(
        attempt=attempt_out(detail.attempt),
        evaluation_title=detail.evaluation_title,
        answers=[
            AnswerDetailOut(
                position=a.position,
                question_id=a.question_id,
                statement=a.statement,
                type=a.type,
                submitted_value=a.submitted_value,
                correct=a.correct,
                correct_answer=a.correct_answer,
            )
            for a in detail.answers
        ],
    )


@router.get("/{attempt_id}/questions", response_model=list[QuestionOut])
async def get_questions(
    attempt_id: UUID, principal: CurrentUser, repos: Repos
) -> list[QuestionOut]:
    questions = await attempt_lifecycle.get_attempt_questions(
        principal, attempt_id, repos
    )
    return [
        QuestionOut(
            position=q.position,
            question_id=q.question_id,
            statement=q.statement,
            type=q.type,
            options=[OptionOut(value=o.value, label=o.label) for o in q.options],
            difficulty=q.difficulty,
            submitted_value=q.submitted_value,
        )
        for q in questions
    ]


@router.put("/{attempt_id}/answers/{question_id}", response_model=AnswerOut)
async def put_answer(
    attempt_id: UUID,
    question_id: UUID,
    body: AnswerIn,
    principal: CurrentUser,
    repos: Repos,
) -> AnswerOut:
    answer = await attempt_lifecycle.record_answer(
        principal, attempt_id, question_id, body.value, repos
    )
    return AnswerOut(
        attempt_id=answer.attempt_id,
        question_id=answer.question_id,
        submitted_value=answer.submitted_value,
        answered_at=answer.answered_at,
    )


@router.post("/{attempt_id}/submit", response_model=GradeOut)
async def submit_attempt(
    attempt_id: UUID,
    principal: CurrentUser,
    repos: Repos,
    audit: Audit,
    cache: Cache,
) -> GradeOut:
    result = await grading.grade_attempt(principal, attempt_id, repos, audit, cache)
    return GradeOut(
        attempt_id=result.attempt_id,
        score=result.score,
        passed=result.passed,
        correct_count=result.correct_count,
        total_questions=result.total_questions,
        late=result.late,
        finished_at=result.finished_at,
    )
