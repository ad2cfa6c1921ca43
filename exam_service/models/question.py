from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal
from uuid import UUID, uuid4

QuestionType = Literal["multiple_choice", "true_false", "open"]
QUESTION_TYPES: tuple[str, ...] = ("multiple_choice", "true_false", "open")


@dataclass(frozen=True, slots=True)
class QuestionOption:
    value: str
    label: str


@dataclass(frozen=True, slots=True)
class Question:
    """One bank entry.  ``correct_answer`` is the stored JSON value:
    a scalar, or a list of acceptable values."""

    id: UUID
    lesson_id: UUID
    statement: str
    type: QuestionType
    options: tuple[QuestionOption, ...] = ()  # multiple_choice only
    correct_answer: Any = None
    difficulty: int = 1  # 1=easy|2=medium|3=hard
    active: bool = True

    @staticmethod
    def new(
        *,
        lesson_id: UUID,
        statement: str,
        type: QuestionType,
        correct_answer: Any,
        options: tuple[QuestionOption, ...] = (),
        difficulty: int = 1,
        active: bool = True,
    ) -> Question:
        if type not in QUESTION_TYPES:
            raise ValueError(f"unknown question type {type!r}")
        return Question(
            id=uuid4(),
            lesson_id=lesson_id,
            statement=statement,
            type=type,
            options=options if type == "multiple_choice" else (),
            correct_answer=correct_answer,
            difficulty=difficulty,
            active=active,
        )
