"""Answer checking across letter answers and legacy full-text answers."""
import re
from typing import Optional, Sequence

LETTER_ANSWER = re.compile(r"^[A-D]$")


def answer_letter(user_answer: str, options: Sequence[str]) -> Optional[str]:
    """Normalise an answer to its option letter.

    Newer attempts store the letter itself ("b"); older ones stored the full
    text of the chosen option. Returns None if the answer matches neither.
    """
    normalized = (user_answer or "").strip().upper()
    if LETTER_ANSWER.match(normalized):
        return normalized
    if not normalized:
        return None
    for index, option in enumerate(options or ()):
        if option.strip().upper() == normalized:
            return chr(ord("A") + index)
    return None


def is_correct(user_answer: str, correct_key: str, options: Sequence[str]) -> bool:
    letter = answer_letter(user_answer, options)
    if letter is None:
        return False
    return letter == (correct_key or "").strip().upper()
