import pytest

from practice_tutor.content import add_question, add_route_item, create_route
from practice_tutor.db import init_db
from practice_tutor.models import Question, ReasoningFeedback


@pytest.fixture
def tmp_db(tmp_path):
    """Provide a temporary SQLite database path for tests."""
    db_path = str(tmp_path / "test_tutor.db")
    return db_path


@pytest.fixture
def route_db(tmp_db):
    """A route with two topics of two subtopics each, three questions per subtopic,
    and a standalone topic with no subtopics."""
    init_db(tmp_db)
    route_id = create_route(tmp_db, "student-1", "Medicine", "Pass the exam")
    ids = {"route_id": route_id, "db_path": tmp_db}
    # Inserted out of display order on purpose
    for order, topic in [(1, "Cardiology"), (0, "Pulmonology")]:
        topic_id = add_route_item(tmp_db, route_id, "topic", topic, order_index=order)
        ids[topic] = topic_id
        for sub_order, sub in [(1, f"{topic} B"), (0, f"{topic} A")]:
            ids[sub] = add_route_item(tmp_db, route_id, "subtopic", sub, parent_id=topic_id, order_index=sub_order)
            for n in range(3):
                add_question(
                    tmp_db, f"{sub} question {n}", ["one", "two", "three", "four"], "A",
                    topic_name=topic, subtopic_name=sub,
                )
    ids["Pharmacology"] = add_route_item(tmp_db, route_id, "topic", "Pharmacology", order_index=2)
    for n in range(3):
        add_question(tmp_db, f"Pharmacology question {n}", ["x", "y", "z", "w"], "B", topic_name="Pharmacology")
    return ids


def make_question(qid, topic="Cardiology", subtopic=None, answer_key="A"):
    return Question(
        id=qid, prompt=f"Question {qid}", options=("London", "Paris", "Rome", "Madrid"),
        answer_key=answer_key, topic_name=topic, subtopic_name=subtopic,
    )


class FakeFeedbackService:
    """Feedback service that answers from a script instead of the network."""

    def __init__(self, fail_prompts=(), malformed_prompts=()):
        self.fail_prompts = set(fail_prompts)
        self.malformed_prompts = set(malformed_prompts)
        self.calls = []

    async def request_feedback(self, question_prompt, user_answer, correct_answer, options, user_reasoning, is_correct):
        self.calls.append(question_prompt)
        if question_prompt in self.fail_prompts:
            raise ConnectionError("network down")
        if question_prompt in self.malformed_prompts:
            from practice_tutor.feedback import parse_feedback
            return parse_feedback('{"technique1Feedback": "only one"}')
        return ReasoningFeedback(
            technique1Feedback=f"t1 {question_prompt}",
            technique2Feedback=f"t2 {question_prompt}",
            overallFeedback=f"overall {question_prompt}",
        )
