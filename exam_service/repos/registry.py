"""The set of collaborators one engine call works against.

Services receive a Repositories bundle as an argument instead of
importing module-level repo singletons, so every call's storage is
explicit: a request-scoped Postgres session in production, a shared
in-memory store in dev and tests.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from exam_service.repos.attempt_repo import AttemptRepo, InMemoryAttemptRepo
from exam_service.repos.catalog_repo import CourseCatalog, InMemoryCourseCatalog
from exam_service.repos.enrollment_repo import EnrollmentRepo, InMemoryEnrollmentRepo
from exam_service.repos.evaluation_repo import EvaluationRepo, InMemoryEvaluationRepo
from exam_service.repos.pg_attempt_repo import PgAttemptRepo
from exam_service.repos.pg_catalog_repo import PgCourseCatalog, PgEnrollmentRepo
from exam_service.repos.pg_evaluation_repo import PgEvaluationRepo
from exam_service.repos.pg_question_repo import PgQuestionBank
from exam_service.repos.question_repo import InMemoryQuestionBank, QuestionBank


@dataclass(frozen=True, slots=True)
class Repositories:
    questions: QuestionBank
    evaluations: EvaluationRepo
    attempts: AttemptRepo
    catalog: CourseCatalog
    enrollments: EnrollmentRepo

    @staticmethod
    def in_memory() -> Repositories:
        return Repositories(
            questions=InMemoryQuestionBank(),
            evaluations=InMemoryEvaluationRepo(),
            attempts=InMemoryAttemptRepo(),
            catalog=InMemoryCourseCatalog(),
            enrollments=InMemoryEnrollmentRepo(),
        )

    @staticmethod
    def for_session(session: AsyncSession) -> Repositories:
        return Repositories(
            questions=PgQuestionBank(session),
            evaluations=PgEvaluationRepo(session),
            attempts=PgAttemptRepo(session),
            catalog=PgCourseCatalog(session),
            enrollments=PgEnrollmentRepo(session),
        )
