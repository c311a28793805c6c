"""Scoring and summary for a finished practice session."""


def get_score_label(score: float) -> str:
    if score >= 80:
        return "EXCELLENT"
    elif score >= 65:
        return "GOOD"
    elif score >= 50:
        return "NEEDS WORK"
    return "REVIEW AGAIN"


def get_score_color(score: float) -> str:
    if score >= 80:
        return "green"
    elif score >= 65:
        return "yellow"
    elif score >= 50:
        return "dark_orange"
    return "red"


def summarize_session(results: list) -> dict:
    """Totals for a list of SessionResult, plus a per-topic breakdown."""
    total = len(results)
    correct = sum(1 for r in results if r.is_correct)
    answered = sum(1 for r in results if r.user_answer)
    timed_out = sum(1 for r in results if r.timed_out)
    time_spent = sum(r.time_spent for r in results)

    topics: dict[str, dict] = {}
    for r in results:
        name = r.question.topic_name or "Uncategorized"
        row = topics.setdefault(name, {"topic_name": name, "total": 0, "correct": 0})
        row["total"] += 1
        row["correct"] += int(r.is_correct)
    for row in topics.values():
        row["score"] = round(row["correct"] / row["total"] * 100, 1)

    return {
        "total": total,
        "correct": correct,
        "answered": answered,
        "timed_out": timed_out,
        "score": round(correct / total * 100, 1) if total else 0.0,
        "avg_time": round(time_spent / total, 1) if total else 0.0,
        "topics": list(topics.values()),
    }
