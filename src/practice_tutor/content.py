"""Content store: study routes, their items, and the question pool."""
import json
from datetime import datetime
from typing import Optional

from practice_tutor.db import get_connection
from practice_tutor.models import ContentNode, Question, Route


def create_route(db_path: str, user_id: str, name: str, objective: Optional[str] = None) -> int:
    conn = get_connection(db_path)
    cur = conn.execute(
        "INSERT INTO routes (user_id, name, objective, created_at) VALUES (?, ?, ?, ?)",
        (user_id, name, objective, datetime.now().isoformat()),
    )
    conn.commit()
    conn.close()
    return cur.lastrowid


def add_route_item(
    db_path: str,
    route_id: int,
    item_type: str,
    name: Optional[str],
    parent_id: Optional[int] = None,
    order_index: int = 0,
    estimated_time: Optional[int] = None,
    difficulty: Optional[str] = None,
) -> int:
    conn = get_connection(db_path)
    cur = conn.execute(
        """INSERT INTO route_items
        (route_id, parent_id, item_type, custom_name, order_index, estimated_time, difficulty)
        VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (route_id, parent_id, item_type, name, order_index, estimated_time, difficulty),
    )
    conn.commit()
    conn.close()
    return cur.lastrowid


def add_question(
    db_path: str,
    prompt: str,
    options: list,
    answer_key: str,
    topic_name: Optional[str],
    subtopic_name: Optional[str] = None,
    explanation: Optional[str] = None,
) -> int:
    conn = get_connection(db_path)
    cur = conn.execute(
        """INSERT INTO questions
        (prompt, options, answer_key, explanation, topic_name, subtopic_name)
        VALUES (?, ?, ?, ?, ?, ?)""",
        (prompt, json.dumps(list(options)), answer_key, explanation, topic_name, subtopic_name),
    )
    conn.commit()
    conn.close()
    return cur.lastrowid


def list_routes(db_path: str, user_id: str) -> list:
    """Routes owned by a user, newest first."""
    conn = get_connection(db_path)
    rows = conn.execute(
        "SELECT * FROM routes WHERE user_id = ? ORDER BY created_at DESC, id DESC", (user_id,)
    ).fetchall()
    conn.close()
    return [
        Route(id=r["id"], user_id=r["user_id"], name=r["name"], objective=r["objective"], created_at=r["created_at"])
        for r in rows
    ]


def fetch_content_nodes(db_path: str, route_id: int) -> list:
    conn = get_connection(db_path)
    rows = conn.execute("SELECT * FROM route_items WHERE route_id = ?", (route_id,)).fetchall()
    conn.close()
    return [ContentNode.from_row(r) for r in rows]


def fetch_questions(db_path: str, topic_name: str, subtopic_name: Optional[str], limit: int) -> list:
    """Up to `limit` questions for a leaf. A None subtopic matches questions without one."""
    conn = get_connection(db_path)
    if subtopic_name is None:
        rows = conn.execute(
            """SELECT * FROM questions
            WHERE topic_name = ? AND subtopic_name IS NULL
            ORDER BY RANDOM() LIMIT ?""",
            (topic_name, limit),
        ).fetchall()
    else:
        rows = conn.execute(
            """SELECT * FROM questions
            WHERE topic_name = ? AND subtopic_name = ?
            ORDER BY RANDOM() LIMIT ?""",
            (topic_name, subtopic_name, limit),
        ).fetchall()
    conn.close()
    return [Question.from_row(r) for r in rows]


def get_question(db_path: str, question_id: int) -> Optional[Question]:
    conn = get_connection(db_path)
    row = conn.execute("SELECT * FROM questions WHERE id = ?", (question_id,)).fetchone()
    conn.close()
    return Question.from_row(row) if row else None
