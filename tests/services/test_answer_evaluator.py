from __future__ import annotations

import uuid

import pytest

from exam_service.models.answer import MultipleChoiceAnswer, OpenAnswer, TrueFalseAnswer
from exam_service.models.question import Question
from exam_service.services.answer_evaluator import (
    canonical,
    evaluate,
    is_correct,
    normalize,
    parse_answer,
)
from tests.conftest import multiple_choice

LESSON = uuid.uuid4()


def _question(type_: str, correct) -> Question:
    return Question.new(
        lesson_id=LESSON, statement="?", type=type_, correct_answer=correct  # type: ignore[arg-type]
    )


# ---- normalize ----


def test_normalize_trims_nested_strings() -> None:
    assert normalize({"b": " x ", "a": [" y", 1]}) == {"a": ["y", 1], "b": "x"}


def test_normalize_leaves_scalars_alone() -> None:
    assert normalize(None) is None
    assert normalize(3) == 3
    assert normalize(True) is True


def test_canonical_keeps_numbers_and_booleans_distinct() -> None:
    assert canonical(1) != canonical(1.0)
    assert canonical(1) != canonical(True)
    assert canonical({"b": 1, "a": 2}) == canonical({"a": 2, "b": 1})


# ---- multiple choice ----


@pytest.mark.parametrize(
    ("submitted", "expected"),
    [("b", True), (" b ", True), ("B", False), ("c", False)],
)
def test_multiple_choice_against_list(submitted: str, expected: bool) -> None:
    question = multiple_choice(LESSON, ["b"])
    assert is_correct(question, MultipleChoiceAnswer(submitted)) is expected


def test_multiple_choice_scalar_correct_answer() -> None:
    question = multiple_choice(LESSON, "a")
    assert is_correct(question, MultipleChoiceAnswer("a")) is True
    assert is_correct(question, MultipleChoiceAnswer("b")) is False


def test_multiple_choice_accepts_any_listed_value() -> None:
    question = multiple_choice(LESSON, ["a", "c"])
    assert is_correct(question, MultipleChoiceAnswer("c")) is True


def test_multiple_choice_structured_payload() -> None:
    question = multiple_choice(LESSON, [{"option": "b", "weight": 1}])
    assert is_correct(question, MultipleChoiceAnswer({"weight": 1, "option": " b"})) is True
    assert is_correct(question, MultipleChoiceAnswer({"weight": 1.0, "option": "b"})) is False


# ---- true / false ----


@pytest.mark.parametrize(
    "submitted",
    ["verdadero", "Verdadero", " TRUE ", "v", "true", True],
)
def test_true_false_truthy_tokens(submitted) -> None:
    question = _question("true_false", "verdadero")
    assert is_correct(question, TrueFalseAnswer(submitted)) is True


@pytest.mark.parametrize("submitted", ["falso", "F", False, "false"])
def test_true_false_falsy_tokens(submitted) -> None:
    assert is_correct(_question("true_false", True), TrueFalseAnswer(submitted)) is False
    assert is_correct(_question("true_false", "falso"), TrueFalseAnswer(submitted)) is True


def test_true_false_unrecognized_token_is_wrong() -> None:
    question = _question("true_false", "verdadero")
    assert is_correct(question, TrueFalseAnswer("si")) is False
    assert is_correct(question, TrueFalseAnswer(1)) is False


# ---- open ----


def test_open_exact_literal_after_trim() -> None:
    question = _question("open", ["Paris", "París"])
    assert is_correct(question, OpenAnswer("  Paris")) is True
    assert is_correct(question, OpenAnswer("París")) is True
    assert is_correct(question, OpenAnswer("paris")) is False
    assert is_correct(question, OpenAnswer("Par")) is False


# ---- degenerate inputs ----


def test_missing_correct_answer_is_never_correct() -> None:
    question = _question("open", None)
    assert is_correct(question, OpenAnswer(None)) is False
    assert is_correct(question, OpenAnswer("anything")) is False


def test_missing_submission_is_wrong() -> None:
    question = _question("open", "x")
    assert is_correct(question, None) is False
    assert evaluate(question, None) is False


def test_parse_answer_tags_by_question_type() -> None:
    assert isinstance(parse_answer("true_false", "v"), TrueFalseAnswer)
    assert isinstance(parse_answer("multiple_choice", "a"), MultipleChoiceAnswer)
    with pytest.raises(ValueError):
        parse_answer("essay", "x")


def test_evaluate_dispatches_on_question_type() -> None:
    assert evaluate(_question("true_false", "verdadero"), "TRUE") is True
    assert evaluate(multiple_choice(LESSON, ["b"]), "B") is False
