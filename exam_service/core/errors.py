"""Exam engine error taxonomy.

Every failure a caller is expected to show to a student or an
instructor is an ExamError subclass with a stable ``code`` and the HTTP
status the API layer answers with.  main.py installs one exception
handler for the whole family, so routers never translate these by hand.
"""

from __future__ import annotations


class ExamError(Exception):
    code = "exam_error"
    status_code = 400
    default_message = "exam operation failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class InsufficientQuestionsError(ExamError):
    code = "insufficient_questions"
    status_code = 422
    default_message = "the lesson does not have enough active questions"

    def __init__(self, available: int, required: int) -> None:
        super().__init__(
            f"the lesson has {available} active question(s), "
            f"{required} are required per exam"
        )
        self.available = available
        self.required = required


class EvaluationNotFoundError(ExamError):
    code = "evaluation_not_found"
    status_code = 404
    default_message = "evaluation not found"


class NotEnrolledError(ExamError):
    code = "not_enrolled"
    status_code = 403
    default_message = "user is not enrolled in the evaluation's course"


class InactiveEvaluationError(ExamError):
    code = "inactive_evaluation"
    status_code = 409
    default_message = "evaluation is not active"


class AttemptInProgressError(ExamError):
    code = "attempt_in_progress"
    status_code = 409
    default_message = "an attempt for this evaluation is already in progress"


class AttemptsExhaustedError(ExamError):
    code = "attempts_exhausted"
    status_code = 409
    default_message = "maximum number of attempts reached for this evaluation"


class AlreadyGradedError(ExamError):
    code = "already_graded"
    status_code = 409
    default_message = "attempt has already been graded"


class VersionNotFoundError(ExamError):
    code = "version_not_found"
    status_code = 409
    default_message = "no version is available for this evaluation"


class AttemptNotFoundError(ExamError):
    code = "attempt_not_found"
    status_code = 404
    default_message = "attempt not found"


class AttemptAccessDeniedError(ExamError):
    code = "attempt_access_denied"
    status_code = 403
    default_message = "attempt belongs to another user"


class QuestionNotInVersionError(ExamError):
    code = "question_not_in_version"
    status_code = 422
    default_message = "question is not part of the attempt's version"


class PersistenceError(ExamError):
    code = "persistence_error"
    status_code = 503
    default_message = "storage operation failed"
