"""Seed the database with a demo study route and its question pool."""
import json
from pathlib import Path

from practice_tutor.content import add_question, add_route_item, create_route
from practice_tutor.db import get_connection
from practice_tutor.models import NodeKind

DATA_DIR = Path(__file__).parent / "data"


def is_seeded(db_path: str) -> bool:
    """Check whether the database already has any routes."""
    conn = get_connection(db_path)
    count = conn.execute("SELECT COUNT(*) FROM routes").fetchone()[0]
    conn.close()
    return count > 0


def seed_route(db_path: str, user_id: str, data: dict) -> int:
    """Insert one route with its topics and subtopics. Returns the route id."""
    route_id = create_route(db_path, user_id, data["name"], data.get("objective"))
    for t_index, topic in enumerate(data["topics"]):
        topic_id = add_route_item(
            db_path, route_id, NodeKind.TOPIC.value, topic["name"],
            order_index=topic.get("order_index", t_index),
            estimated_time=topic.get("estimated_time"),
            difficulty=topic.get("difficulty"),
        )
        for s_index, subtopic in enumerate(topic.get("subtopics", [])):
            add_route_item(
                db_path, route_id, NodeKind.SUBTOPIC.value, subtopic["name"],
                parent_id=topic_id,
                order_index=subtopic.get("order_index", s_index),
                estimated_time=subtopic.get("estimated_time"),
                difficulty=subtopic.get("difficulty"),
            )
    return route_id


def seed_questions(db_path: str, questions: list) -> None:
    for q in questions:
        add_question(
            db_path,
            prompt=q["prompt"],
            options=q["options"],
            answer_key=q["answer_key"],
            topic_name=q.get("topic_name"),
            subtopic_name=q.get("subtopic_name"),
            explanation=q.get("explanation"),
        )


def seed_all(db_path: str, user_id: str) -> None:
    """Load the bundled demo route on first run."""
    if is_seeded(db_path):
        return
    data = json.loads((DATA_DIR / "demo_route.json").read_text(encoding="utf-8"))
    seed_route(db_path, user_id, data["route"])
    seed_questions(db_path, data["questions"])
