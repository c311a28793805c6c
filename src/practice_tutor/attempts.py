"""Attempt store: answered questions and the reasoning attached to them."""
from datetime import datetime
from typing import Optional

from practice_tutor.db import get_connection
from practice_tutor.models import Attempt, AttemptSource, ReasoningFeedback, ReasoningRecord


def save_attempt(db_path: str, attempt: Attempt) -> int:
    answered_at = attempt.answered_at or datetime.now().isoformat()
    conn = get_connection(db_path)
    cur = conn.execute(
        """INSERT INTO attempts
        (user_id, question_id, user_answer, is_correct, time_spent, source, session_id, error_type, answered_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            attempt.user_id, attempt.question_id, attempt.user_answer, int(attempt.is_correct),
            attempt.time_spent, attempt.source, attempt.session_id, attempt.error_type, answered_at,
        ),
    )
    conn.commit()
    conn.close()
    return cur.lastrowid


def save_reasoning(db_path: str, attempt_id: int, text: str) -> int:
    conn = get_connection(db_path)
    cur = conn.execute(
        "INSERT INTO reasoning_records (attempt_id, user_reasoning, created_at) VALUES (?, ?, ?)",
        (attempt_id, text, datetime.now().isoformat()),
    )
    conn.commit()
    conn.close()
    return cur.lastrowid


def update_reasoning_feedback(db_path: str, attempt_id: int, feedback: ReasoningFeedback) -> bool:
    """Attach feedback to an attempt's reasoning. Returns False if there is no reasoning row."""
    columns = feedback.as_columns()
    conn = get_connection(db_path)
    cur = conn.execute(
        """UPDATE reasoning_records
        SET technique_1_feedback = ?, technique_2_feedback = ?, overall_feedback = ?
        WHERE attempt_id = ?""",
        (columns["technique_1_feedback"], columns["technique_2_feedback"], columns["overall_feedback"], attempt_id),
    )
    updated = cur.rowcount > 0
    conn.commit()
    conn.close()
    return updated


def get_reasoning(db_path: str, attempt_id: int) -> Optional[ReasoningRecord]:
    conn = get_connection(db_path)
    row = conn.execute("SELECT * FROM reasoning_records WHERE attempt_id = ?", (attempt_id,)).fetchone()
    conn.close()
    if not row:
        return None
    return ReasoningRecord(
        attempt_id=row["attempt_id"],
        user_reasoning=row["user_reasoning"],
        technique_1_feedback=row["technique_1_feedback"],
        technique_2_feedback=row["technique_2_feedback"],
        overall_feedback=row["overall_feedback"],
    )


def get_session_attempts(db_path: str, session_id: str) -> list:
    conn = get_connection(db_path)
    rows = conn.execute(
        "SELECT * FROM attempts WHERE session_id = ? ORDER BY id", (session_id,)
    ).fetchall()
    conn.close()
    return [
        Attempt(
            id=r["id"],
            question_id=r["question_id"],
            user_answer=r["user_answer"],
            is_correct=bool(r["is_correct"]),
            time_spent=r["time_spent"],
            session_id=r["session_id"],
            user_id=r["user_id"],
            source=r["source"],
            error_type=r["error_type"],
            answered_at=r["answered_at"],
        )
        for r in rows
    ]


def fetch_incorrect_attempts(db_path: str, user_id: str, source: str = AttemptSource.PRACTICE.value) -> list:
    """(subtopic_name, topic_name) of every wrong answer from the given source, oldest first."""
    conn = get_connection(db_path)
    rows = conn.execute(
        """SELECT q.subtopic_name, q.topic_name
        FROM attempts a
        JOIN questions q ON a.question_id = q.id
        WHERE a.user_id = ? AND a.source = ? AND a.is_correct = 0
        ORDER BY a.id""",
        (user_id, source),
    ).fetchall()
    conn.close()
    return [(r["subtopic_name"], r["topic_name"]) for r in rows]
