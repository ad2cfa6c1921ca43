"""Submitted answers as a tagged union.

The payload a student sends depends on the question type.  Wrapping it
in the matching class at the boundary means the evaluator dispatches on
the tag instead of probing the shape of an untyped value.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class MultipleChoiceAnswer:
    value: Any  # option value (usually str); dict payloads are compared structurally


@dataclass(frozen=True, slots=True)
class TrueFalseAnswer:
    value: Any  # "verdadero"/"falso", "true"/"false", or a JSON boolean


@dataclass(frozen=True, slots=True)
class OpenAnswer:
    value: Any  # free-form literal


SubmittedAnswer = MultipleChoiceAnswer | TrueFalseAnswer | OpenAnswer

_BY_TYPE: dict[str, type[MultipleChoiceAnswer | TrueFalseAnswer | OpenAnswer]] = {
    "multiple_choice": MultipleChoiceAnswer,
    "true_false": TrueFalseAnswer,
    "open": OpenAnswer,
}


def answer_for(question_type: str, raw: Any) -> SubmittedAnswer:
    """Tag a raw stored/submitted value with its question type."""
    try:
        cls = _BY_TYPE[question_type]
    except KeyError:
        raise ValueError(f"unknown question type {question_type!r}") from None
    return cls(value=raw)
