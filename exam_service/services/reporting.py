"""Read-only attempt views for instructors and the reporting collaborator."""

from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass, field
from uuid import UUID

from exam_service.models.attempt import Attempt, AttemptState
from exam_service.repos.registry import Repositories
from exam_service.services.evaluations import get_evaluation

# Ten-point score buckets: "0-9", "10-19", ..., "100-109" (a perfect score)
BUCKET_LABELS: tuple[str, ...] = tuple(f"{b}-{b + 9}" for b in range(0, 101, 10))


@dataclass(frozen=True, slots=True)
class EvaluationSummary:
    evaluation_id: UUID
    attempts: int = 0
    average: float = 0.0
    passed: int = 0
    failed: int = 0
    distribution: dict[str, int] = field(default_factory=dict)
    attempts_per_user: dict[UUID, int] = field(default_factory=dict)
    average_duration_seconds: float = 0.0


def bucket_for(score: float) -> str:
    base = min(int(math.floor(score / 10)) * 10, 100)
    return f"{base}-{base + 9}"


async def list_attempts(
    evaluation_id: UUID,
    repos: Repositories,
    user_id: UUID | None = None,
    state: AttemptState | None = None,
    started_from: int | None = None,
    started_to: int | None = None,
) -> list[Attempt]:
    """Attempts of one evaluation, newest first."""
    await get_evaluation(evaluation_id, repos)
    return await repos.attempts.list_by_evaluation(
        evaluation_id,
        user_id=user_id,
        state=state,
        started_from=started_from,
        started_to=started_to,
    )


async def summarize_evaluation(
    evaluation_id: UUID, repos: Repositories
) -> EvaluationSummary:
    """Aggregate the evaluation's terminated attempts."""
    await get_evaluation(evaluation_id, repos)
    graded = [
        a
        for a in await repos.attempts.list_by_evaluation(
            evaluation_id, state="terminated"
        )
        if a.score is not None
    ]
    distribution = dict.fromkeys(BUCKET_LABELS, 0)
    if not graded:
        return EvaluationSummary(evaluation_id=evaluation_id, distribution=distribution)

    for a in graded:
        distribution[bucket_for(a.score)] += 1

    durations = [a.finished_at - a.started_at for a in graded if a.finished_at is not None]
    passed = sum(1 for a in graded if a.passed)
    return EvaluationSummary(
        evaluation_id=evaluation_id,
        attempts=len(graded),
        average=round(sum(a.score for a in graded) / len(graded), 2),
        passed=passed,
        failed=len(graded) - passed,
        distribution=distribution,
        attempts_per_user=dict(Counter(a.user_id for a in graded)),
        average_duration_seconds=(
            round(sum(durations) / len(durations), 2) if durations else 0.0
        ),
    )
