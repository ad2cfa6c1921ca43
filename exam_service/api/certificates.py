"""Certificate eligibility endpoint.

Read by the certificate issuer before generating a certificate.  A
learner may check their own eligibility; staff may check anyone's.
"""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from exam_service.api.dependencies import Cache, CurrentUser, Repos
from exam_service.services.eligibility import is_eligible_for_certificate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/certificates", tags=["certificates"])


class StandingOut(BaseModel):
    evaluation_id: UUID
    title: str
    passing_score: float
    best_score: float | None
    passed: bool


class EligibilityOut(BaseModel):
    user_id: UUID
    course_id: UUID
    eligible: bool
    best_score: float | None
    evaluations: list[StandingOut]


@router.get("/eligibility", response_model=EligibilityOut)
async def get_eligibility(
    course_id: UUID,
    principal: CurrentUser,
    repos: Repos,
    cache: Cache,
    user_id: UUID | None = None,
) -> EligibilityOut:
    target = user_id or principal.user_id
    if not principal.can_access(target):
        logger.warning(
            "Eligibility check denied: user=%s target=%s", principal.user_id, target
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions",
        )

    result = await is_eligible_for_certificate(target, course_id, repos, cache)
    return EligibilityOut(
        user_id=result.user_id,
        course_id=result.course_id,
        eligible=result.eligible,
        best_score=result.best_score,
        evaluations=[
            StandingOut(
                evaluation_id=s.evaluation_id,
                title=s.title,
                passing_score=s.passing_score,
                best_score=s.best_score,
                passed=s.passed,
            )
            for s in result.evaluations
        ],
    )
