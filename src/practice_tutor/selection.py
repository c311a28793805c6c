"""Question selection for practice sessions."""
import logging
import random
from typing import Optional, Sequence

from practice_tutor.content import fetch_questions
from practice_tutor.errors import InvalidSelection, NoQuestionsAvailable
from practice_tutor.hierarchy import find_node, leaves_of, subtopics_of, topics
from practice_tutor.interleave import schedule
from practice_tutor.models import NodeKind, SelectionMode, SessionConfig
from practice_tutor.review import rank_error_history

logger = logging.getLogger(__name__)


def _leaf_key(topic, leaf) -> tuple:
    """(topic_name, subtopic_name) used to match questions to a leaf."""
    if leaf is topic:
        return topic.name, None
    return topic.name, leaf.name


def _questions_for_topic(db_path: str, topic, limit: int) -> list:
    questions = []
    for leaf in leaves_of(topic):
        topic_name, subtopic_name = _leaf_key(topic, leaf)
        if not topic_name or (leaf is not topic and not subtopic_name):
            continue
        questions.extend(fetch_questions(db_path, topic_name, subtopic_name, limit))
    return questions


def _select_by_subtopics(db_path, config, tree, topic_ids, subtopic_ids) -> list:
    if len(topic_ids) != 1:
        raise InvalidSelection("Choose exactly one topic")
    topic = find_node(tree, topic_ids[0])
    if topic is None or topic.kind != NodeKind.TOPIC.value:
        raise InvalidSelection(f"Topic {topic_ids[0]} is not part of this route")
    if not topic.name:
        return []

    available = subtopics_of(topic)
    if not available:
        return fetch_questions(db_path, topic.name, None, config.questions_per_leaf)
    if not subtopic_ids:
        raise InvalidSelection("Choose a topic and at least one subtopic")

    by_id = {s.id: s for s in available}
    questions = []
    for subtopic_id in subtopic_ids:
        subtopic = by_id.get(subtopic_id)
        if subtopic is None or not subtopic.name:
            continue
        questions.extend(fetch_questions(db_path, topic.name, subtopic.name, config.questions_per_leaf))
    return questions


def _select_by_topics(db_path, config, tree, topic_ids) -> list:
    if not topic_ids:
        raise InvalidSelection("Choose at least one topic")
    chosen = set(topic_ids)
    questions = []
    for topic in topics(tree):
        if topic.id in chosen and topic.name:
            questions.extend(_questions_for_topic(db_path, topic, config.questions_per_leaf))
    return questions


def _select_by_full_route(db_path, config, tree) -> list:
    questions = []
    for topic in topics(tree):
        if topic.name:
            questions.extend(_questions_for_topic(db_path, topic, config.questions_per_leaf))
    return questions


def _select_by_error_history(db_path, config, user_id) -> list:
    if user_id is None:
        raise InvalidSelection("Error history mode needs a user")
    entries = rank_error_history(db_path, user_id, config.max_leaves_for_error_history)
    questions = []
    for entry in entries:
        questions.extend(
            fetch_questions(db_path, entry.topic_name, entry.subtopic_name, config.questions_per_leaf)
        )
    return questions


def select_questions(
    db_path: str,
    config: SessionConfig,
    tree: list,
    topic_ids: Sequence[int] = (),
    subtopic_ids: Sequence[int] = (),
    user_id: Optional[str] = None,
) -> list:
    """Fetch up to `questions_per_leaf` questions for every leaf the mode selects.

    The same leaf reached twice is fetched twice; nothing is deduplicated.
    """
    topic_ids = list(topic_ids)
    mode = SelectionMode(config.mode)
    if mode == SelectionMode.BY_SUBTOPICS:
        questions = _select_by_subtopics(db_path, config, tree, topic_ids, list(subtopic_ids))
    elif mode == SelectionMode.BY_TOPICS:
        questions = _select_by_topics(db_path, config, tree, topic_ids)
    elif mode == SelectionMode.BY_FULL_ROUTE:
        questions = _select_by_full_route(db_path, config, tree)
    else:
        questions = _select_by_error_history(db_path, config, user_id)
    logger.debug("Selected %d questions in %s mode", len(questions), mode.value)
    return questions


def prepare_questions(
    db_path: str,
    config: SessionConfig,
    tree: list,
    topic_ids: Sequence[int] = (),
    subtopic_ids: Sequence[int] = (),
    user_id: Optional[str] = None,
    rng: Optional[random.Random] = None,
) -> list:
    """Select and order the questions for a new session."""
    questions = select_questions(db_path, config, tree, topic_ids, subtopic_ids, user_id)
    if not questions:
        if SelectionMode(config.mode) == SelectionMode.BY_ERROR_HISTORY:
            raise NoQuestionsAvailable("No practice errors found yet. Complete a few practice sessions first.")
        raise NoQuestionsAvailable("No questions available for this selection. Try different topics.")
    return schedule(questions, config.interleaving_enabled, rng)
