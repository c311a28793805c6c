"""Tests for session scoring and summaries."""
import pytest

from conftest import make_question
from practice_tutor.models import SessionResult
from practice_tutor.report import get_score_color, get_score_label, summarize_session


@pytest.mark.parametrize("score,label,color", [
    (95, "EXCELLENT", "green"),
    (80, "EXCELLENT", "green"),
    (70, "GOOD", "yellow"),
    (50, "NEEDS WORK", "dark_orange"),
    (10, "REVIEW AGAIN", "red"),
])
def test_score_label_and_color(score, label, color):
    assert get_score_label(score) == label
    assert get_score_color(score) == color


def test_summarize_session():
    results = [
        SessionResult(make_question(1, "Cardiology"), "A", True, 10),
        SessionResult(make_question(2, "Cardiology"), "B", False, 20),
        SessionResult(make_question(3, "Pulmonology"), "", False, 60, timed_out=True),
        SessionResult(make_question(4, None), "A", True, 30),
    ]
    summary = summarize_session(results)
    assert summary["total"] == 4
    assert summary["correct"] == 2
    assert summary["answered"] == 3
    assert summary["timed_out"] == 1
    assert summary["score"] == 50.0
    assert summary["avg_time"] == 30.0
    assert summary["topics"] == [
        {"topic_name": "Cardiology", "total": 2, "correct": 1, "score": 50.0},
        {"topic_name": "Pulmonology", "total": 1, "correct": 0, "score": 0.0},
        {"topic_name": "Uncategorized", "total": 1, "correct": 1, "score": 100.0},
    ]


def test_summarize_empty_session():
    summary = summarize_session([])
    assert summary["total"] == 0
    assert summary["score"] == 0.0
    assert summary["topics"] == []
