"""Tests for answer equivalence."""
from practice_tutor.answers import answer_letter, is_correct

OPTIONS = ["London", "Paris", "Rome"]


def test_letter_answer_matches_key():
    assert is_correct("B", "B", OPTIONS) is True


def test_letter_answer_is_case_insensitive():
    assert is_correct("b", "B", OPTIONS) is True
    assert is_correct(" B ", "b", OPTIONS) is True


def test_legacy_full_text_answer():
    assert is_correct("Paris", "B", OPTIONS) is True


def test_legacy_full_text_is_case_insensitive_and_trimmed():
    assert is_correct("paris", "B", OPTIONS) is True
    assert is_correct("  PARIS ", "B", OPTIONS) is True


def test_legacy_wrong_option():
    assert is_correct("Rome", "B", OPTIONS) is False


def test_unknown_answer_is_incorrect():
    assert is_correct("Z", "B", OPTIONS) is False
    assert is_correct("Berlin", "B", OPTIONS) is False


def test_empty_answer_is_incorrect():
    assert is_correct("", "B", OPTIONS) is False
    assert is_correct(None, "B", OPTIONS) is False


def test_missing_options_only_checks_letters():
    assert is_correct("A", "A", []) is True
    assert is_correct("London", "A", None) is False


def test_answer_letter():
    assert answer_letter("c", OPTIONS) == "C"
    assert answer_letter("rome", OPTIONS) == "C"
    assert answer_letter("nowhere", OPTIONS) is None
