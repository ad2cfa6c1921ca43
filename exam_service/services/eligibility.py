"""Certificate eligibility for a (user, course) pair.

A learner is eligible when every active evaluation of the course's
lessons has at least one terminated attempt whose score reaches that
evaluation's current passing score.  A course without active
evaluations grants nothing.  The check always uses the current
configuration: editing a passing score changes the answer for attempts
graded before the edit.

Results are cached read-through under ``eligibility:{user}:{course}``.
Grading any attempt of the user drops all of that user's entries;
creating or editing an evaluation drops every entry.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from uuid import UUID

from redis.exceptions import RedisError

from exam_service.core.config import SETTINGS
from exam_service.core.metrics import CACHE_OPERATIONS
from exam_service.repos.registry import Repositories
from exam_service.services.cache import CacheService

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EvaluationStanding:
    evaluation_id: UUID
    title: str
    passing_score: float
    best_score: float | None  # None = no terminated attempt
    passed: bool


@dataclass(frozen=True, slots=True)
class EligibilityResult:
    user_id: UUID
    course_id: UUID
    eligible: bool
    best_score: float | None  # None unless eligible
    evaluations: list[EvaluationStanding]

    def to_json(self) -> str:
        data = asdict(self)
        data["user_id"] = str(self.user_id)
        data["course_id"] = str(self.course_id)
        for item in data["evaluations"]:
            item["evaluation_id"] = str(item["evaluation_id"])
        return json.dumps(data)

    @staticmethod
    def from_json(raw: str) -> EligibilityResult:
        data = json.loads(raw)
        return EligibilityResult(
            user_id=UUID(data["user_id"]),
            course_id=UUID(data["course_id"]),
            eligible=data["eligible"],
            best_score=data["best_score"],
            evaluations=[
                EvaluationStanding(
                    evaluation_id=UUID(item["evaluation_id"]),
                    title=item["title"],
                    passing_score=item["passing_score"],
                    best_score=item["best_score"],
                    passed=item["passed"],
                )
                for item in data["evaluations"]
            ],
        )


def _cache_key(user_id: UUID, course_id: UUID) -> str:
    return f"eligibility:{user_id}:{course_id}"


async def compute_eligibility(
    user_id: UUID, course_id: UUID, repos: Repositories
) -> EligibilityResult:
    lesson_ids = await repos.catalog.lesson_ids_for_course(course_id)
    evaluations = await repos.evaluations.list_active_by_lessons(lesson_ids)
    if not evaluations:
        return EligibilityResult(user_id, course_id, False, None, [])

    attempts = await repos.attempts.list_for_user(
        user_id, [e.id for e in evaluations], state="terminated"
    )

    standings: list[EvaluationStanding] = []
    for evaluation in sorted(evaluations, key=lambda e: e.title):
        scores = [
            a.score
            for a in attempts
            if a.evaluation_id == evaluation.id and a.score is not None
        ]
        best = max(scores) if scores else None
        standings.append(
            EvaluationStanding(
                evaluation_id=evaluation.id,
                title=evaluation.title,
                passing_score=evaluation.passing_score,
                best_score=best,
                passed=best is not None and best >= evaluation.passing_score,
            )
        )

    eligible = all(s.passed for s in standings)
    best_score = max(s.best_score for s in standings) if eligible else None
    return EligibilityResult(user_id, course_id, eligible, best_score, standings)


async def is_eligible_for_certificate(
    user_id: UUID,
    course_id: UUID,
    repos: Repositories,
    cache: CacheService | None = None,
) -> EligibilityResult:
    key = _cache_key(user_id, course_id)
    if cache is not None:
        try:
            cached = await cache.get(key)
        except RedisError:
            logger.warning("Eligibility cache read failed key=%s", key, exc_info=True)
            cached = None
        if cached is not None:
            CACHE_OPERATIONS.labels(operation="hit").inc()
            return EligibilityResult.from_json(cached)
        CACHE_OPERATIONS.labels(operation="miss").inc()

    result = await compute_eligibility(user_id, course_id, repos)
    logger.info(
        "Eligibility computed user=%s course=%s eligible=%s",
        user_id,
        course_id,
        result.eligible,
    )

    if cache is not None:
        try:
            await cache.set(key, result.to_json(), SETTINGS.eligibility_cache_ttl)
        except RedisError:
            logger.warning("Eligibility cache write failed key=%s", key, exc_info=True)
    return result


async def invalidate_eligibility(cache: CacheService, user_id: UUID) -> None:
    try:
        await cache.delete_pattern(f"eligibility:{user_id}:*")
    except RedisError:
        # The TTL still bounds how long a stale answer is served
        logger.warning("Eligibility cache invalidation failed user=%s", user_id, exc_info=True)


async def invalidate_all_eligibility(cache: CacheService) -> None:
    """Drop every cached answer after an evaluation is created or edited."""
    try:
        await cache.delete_pattern("eligibility:*")
    except RedisError:
        logger.warning("Eligibility cache flush failed", exc_info=True)
