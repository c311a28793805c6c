"""Weak area identification from a student's practice errors."""
from practice_tutor.attempts import fetch_incorrect_attempts
from practice_tutor.models import AttemptSource, ErrorHistoryEntry, NodeKind


def rank_errors(rows, max_entries: int) -> list[ErrorHistoryEntry]:
    """Count wrong answers per subtopic (or per topic when a question has no subtopic).

    `rows` are (subtopic_name, topic_name) pairs. Entries come back most errors
    first; ties keep the order in which the subtopic was first seen.
    """
    entries: dict[tuple, ErrorHistoryEntry] = {}
    for subtopic_name, topic_name in rows:
        # subtopic and topic-level leaves never share a key, even with equal names
        if subtopic_name:
            key = (NodeKind.SUBTOPIC.value, subtopic_name)
        elif topic_name:
            key = (NodeKind.TOPIC.value, topic_name)
        else:
            continue
        entry = entries.get(key)
        if entry is None:
            entry = entries[key] = ErrorHistoryEntry(
                subtopic_name=subtopic_name or None, topic_name=topic_name or "",
            )
        elif not entry.topic_name and topic_name:
            entry.topic_name = topic_name
        entry.error_count += 1
    # sorted() is stable, so first-seen order breaks ties
    ranked = sorted(entries.values(), key=lambda e: e.error_count, reverse=True)
    return ranked[:max_entries]


def rank_error_history(db_path: str, user_id: str, max_entries: int = 10) -> list[ErrorHistoryEntry]:
    """Subtopics the student gets wrong most often in practice sessions."""
    rows = fetch_incorrect_attempts(db_path, user_id, source=AttemptSource.PRACTICE.value)
    return rank_errors(rows, max_entries)
