"""Randomized exam versions.

An evaluation is served as ``version_count`` frozen question sets, each
a random sample of ``questions_per_exam`` ids from the lesson's active
pool.  Each version is the head of an independent Fisher-Yates shuffle
(``random.Random.shuffle``) of the whole pool, so every subset of the
right size is equally likely and versions may overlap.

Versions are never edited.  Regeneration deletes every existing version
of the evaluation and inserts the new set in the same transaction.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Iterable
from uuid import UUID

from exam_service.core.errors import InsufficientQuestionsError
from exam_service.core.metrics import VERSION_GENERATIONS
from exam_service.models.evaluation import Evaluation, ExamVersion
from exam_service.repos.registry import Repositories

logger = logging.getLogger(__name__)


def _dedupe(pool: Iterable[UUID]) -> list[UUID]:
    seen: set[UUID] = set()
    unique: list[UUID] = []
    for qid in pool:
        if qid not in seen:
            seen.add(qid)
            unique.append(qid)
    return unique


def generate_versions(
    evaluation: Evaluation,
    pool: Iterable[UUID],
    rng: random.Random | None = None,
) -> list[ExamVersion]:
    """Build ``evaluation.version_count`` versions from ``pool``.

    Pure apart from the random source.  Raises InsufficientQuestionsError
    (and builds nothing) when the deduplicated pool is smaller than
    ``questions_per_exam``.
    """
    rng = rng or random.Random()
    unique = _dedupe(pool)
    needed = evaluation.questions_per_exam
    if len(unique) < needed:
        raise InsufficientQuestionsError(available=len(unique), required=needed)

    versions: list[ExamVersion] = []
    for number in range(1, evaluation.version_count + 1):
        shuffled = list(unique)
        rng.shuffle(shuffled)
        versions.append(
            ExamVersion.new(
                evaluation_id=evaluation.id,
                version_number=number,
                question_ids=tuple(shuffled[:needed]),
            )
        )
    return versions


async def regenerate_versions(
    evaluation: Evaluation,
    repos: Repositories,
    rng: random.Random | None = None,
) -> list[ExamVersion]:
    """Replace the evaluation's versions with a freshly generated set.

    Existing versions are left as they are when the pool is too small.
    Attempts keep pointing at the version id they were started with.
    """
    pool = await repos.questions.fetch_active_questions(evaluation.lesson_id)
    try:
        versions = generate_versions(evaluation, [q.id for q in pool], rng)
    except InsufficientQuestionsError as e:
        VERSION_GENERATIONS.labels(result="insufficient_questions").inc()
        logger.warning(
            "Version generation rejected evaluation=%s available=%d required=%d",
            evaluation.id,
            e.available,
            e.required,
        )
        raise

    await repos.evaluations.replace_versions(evaluation.id, versions)
    VERSION_GENERATIONS.labels(result="ok").inc()
    logger.info(
        "Regenerated versions evaluation=%s count=%d questions_per_exam=%d",
        evaluation.id,
        len(versions),
        evaluation.questions_per_exam,
    )
    return versions
