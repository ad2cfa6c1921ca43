"""Per-question correctness.

Submitted and stored answers are arbitrary JSON values.  Both sides go
through ``normalize`` and are compared by their canonical JSON encoding,
so ``1``, ``1.0`` and ``true`` stay distinct while ``" b "`` and ``"b"``
match.

Dispatch is on the tagged answer type:

    multiple_choice  submitted value equals one of the correct values
    true_false       truth value of both sides, Spanish or English tokens
    open             submitted literal equals one of the accepted literals

Multiple-choice and open comparisons are case-sensitive.
"""

from __future__ import annotations

import json
from typing import Any

from exam_service.models.answer import (
    MultipleChoiceAnswer,
    OpenAnswer,
    SubmittedAnswer,
    TrueFalseAnswer,
    answer_for,
)
from exam_service.models.question import Question

_TRUE_TOKENS = frozenset({"verdadero", "true", "v"})
_FALSE_TOKENS = frozenset({"falso", "false", "f"})


def normalize(value: Any) -> Any:
    """Trim strings, recursively, leaving every other scalar untouched."""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (list, tuple)):
        return [normalize(v) for v in value]
    if isinstance(value, dict):
        return {str(k): normalize(value[k]) for k in sorted(value, key=str)}
    return value


def canonical(value: Any) -> str:
    return json.dumps(normalize(value), sort_keys=True, ensure_ascii=False)


def parse_answer(question_type: str, raw: Any) -> SubmittedAnswer:
    return answer_for(question_type, raw)


def _accepted(correct_answer: Any) -> list[Any]:
    # A scalar correct answer is a set of one.
    if isinstance(correct_answer, (list, tuple)):
        return list(correct_answer)
    return [correct_answer]


def _matches_any(submitted: Any, correct_answer: Any) -> bool:
    target = canonical(submitted)
    if canonical(correct_answer) == target:
        return True
    return any(canonical(c) == target for c in _accepted(correct_answer))


def truth_value(value: Any) -> bool | None:
    """Map a true/false token or JSON boolean to a bool, None if unrecognized."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        token = value.strip().lower()
        if token in _TRUE_TOKENS:
            return True
        if token in _FALSE_TOKENS:
            return False
    return None


def _true_false_correct(submitted: Any, correct_answer: Any) -> bool:
    got = truth_value(submitted)
    if got is None:
        return False
    return any(truth_value(c) is got for c in _accepted(correct_answer))


def is_correct(question: Question, submitted: SubmittedAnswer | None) -> bool:
    if question.correct_answer is None:
        return False
    if submitted is None or submitted.value is None:
        return False

    if isinstance(submitted, TrueFalseAnswer):
        return _true_false_correct(submitted.value, question.correct_answer)
    if isinstance(submitted, (MultipleChoiceAnswer, OpenAnswer)):
        return _matches_any(submitted.value, question.correct_answer)
    return False


def evaluate(question: Question, raw: Any) -> bool:
    """Shortcut for callers holding an untagged stored value."""
    if raw is None:
        return False
    return is_correct(question, parse_answer(question.type, raw))
