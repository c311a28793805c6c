"""Question ordering: topic interleaving or a plain shuffle."""
import random
from typing import Optional, Sequence

UNCATEGORIZED = "__uncategorized__"


def _topic_key(question) -> str:
    return question.topic_name or UNCATEGORIZED


def interleave(questions: Sequence, rng: Optional[random.Random] = None) -> list:
    """Spread topics so consecutive questions come from different topics.

    Questions are grouped by topic (groups ordered by first appearance), each
    group is shuffled, then groups are merged round-robin.
    """
    rng = rng or random.Random()
    groups: dict[str, list] = {}
    for q in questions:
        groups.setdefault(_topic_key(q), []).append(q)
    for group in groups.values():
        rng.shuffle(group)

    result = []
    longest = max((len(g) for g in groups.values()), default=0)
    for i in range(longest):
        for group in groups.values():
            if i < len(group):
                result.append(group[i])
    return result


def shuffle_flat(questions: Sequence, rng: Optional[random.Random] = None) -> list:
    rng = rng or random.Random()
    result = list(questions)
    rng.shuffle(result)
    return result


def schedule(questions: Sequence, interleaving_enabled: bool, rng: Optional[random.Random] = None) -> list:
    if interleaving_enabled:
        return interleave(questions, rng)
    return shuffle_flat(questions, rng)
