"""Tests for reasoning feedback generation."""
import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from openai import APIConnectionError

from conftest import FakeFeedbackService
from practice_tutor.attempts import get_reasoning, save_attempt, save_reasoning
from practice_tutor.content import add_question, get_question
from practice_tutor.db import init_db
from practice_tutor.errors import FeedbackError
from practice_tutor.feedback import (
    SYSTEM_PROMPT, FeedbackEvent, FeedbackProgress, FeedbackRequest, OpenAIFeedbackService,
    build_user_prompt, generate_feedback, parse_feedback,
)
from practice_tutor.models import Attempt, ReasoningFeedback

REASONING = "Ruled out the unsafe options, then compared the rest."

GOOD_JSON = (
    '{"technique1Feedback": "Solid elimination.", '
    '"technique2Feedback": "No trap missed.", '
    '"overallFeedback": "Well reasoned."}'
)


@pytest.fixture
def requests_db(tmp_db):
    """Three answered questions, each with saved reasoning."""
    init_db(tmp_db)
    requests = []
    for n in range(1, 4):
        qid = add_question(tmp_db, f"Prompt {n}", ["a", "b", "c", "d"], "A", topic_name="T")
        attempt_id = save_attempt(tmp_db, Attempt(
            question_id=qid, user_answer="A", is_correct=True, time_spent=5,
            session_id="s1", user_id="u1",
        ))
        save_reasoning(tmp_db, attempt_id, REASONING)
        requests.append(FeedbackRequest(
            attempt_id=attempt_id, question=get_question(tmp_db, qid),
            user_answer="A", is_correct=True, reasoning=REASONING,
        ))
    return tmp_db, requests


def _completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def _mock_client(content=GOOD_JSON, side_effect=None):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=_completion(content), side_effect=side_effect)
    return client


# --- Parsing ---


def test_parse_feedback_valid():
    feedback = parse_feedback(GOOD_JSON)
    assert feedback.technique1Feedback == "Solid elimination."
    assert feedback.overallFeedback == "Well reasoned."


@pytest.mark.parametrize("raw", [
    "not json",
    "",
    '{"technique1Feedback": "a", "technique2Feedback": "b"}',
    '{"technique1Feedback": "a", "technique2Feedback": "  ", "overallFeedback": "c"}',
])
def test_parse_feedback_rejects_incomplete_responses(raw):
    with pytest.raises(FeedbackError):
        parse_feedback(raw)


def test_build_user_prompt_lists_lettered_options():
    prompt = build_user_prompt("What?", "B", "A", ["one", "two"], REASONING, False)
    assert "A) one" in prompt
    assert "B) two" in prompt
    assert "Is it correct?: No" in prompt
    assert REASONING in prompt


# --- OpenAI service ---


def test_service_requires_api_key():
    with pytest.raises(FeedbackError):
        OpenAIFeedbackService(api_key="")


def test_service_sends_json_mode_request():
    client = _mock_client()
    service = OpenAIFeedbackService(api_key="", model="test-model", client=client)
    feedback = asyncio.run(service.request_feedback("What?", "A", "A", ["one", "two"], REASONING, True))

    assert feedback.technique2Feedback == "No trap missed."
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "test-model"
    assert kwargs["response_format"] == {"type": "json_object"}
    assert kwargs["messages"][0] == {"role": "system", "content": SYSTEM_PROMPT}
    assert "What?" in kwargs["messages"][1]["content"]


def test_service_rejects_short_reasoning_without_calling_model():
    client = _mock_client()
    service = OpenAIFeedbackService(api_key="", client=client)
    with pytest.raises(FeedbackError):
        asyncio.run(service.request_feedback("What?", "A", "A", ["one"], "too short", True))
    client.chat.completions.create.assert_not_called()


def test_service_rejects_question_without_options():
    service = OpenAIFeedbackService(api_key="", client=_mock_client())
    with pytest.raises(FeedbackError):
        asyncio.run(service.request_feedback("What?", "A", "A", [], REASONING, True))


def test_service_wraps_api_errors():
    error = APIConnectionError(request=MagicMock())
    service = OpenAIFeedbackService(api_key="", client=_mock_client(side_effect=error))
    with pytest.raises(FeedbackError, match="Feedback request failed"):
        asyncio.run(service.request_feedback("What?", "A", "A", ["one"], REASONING, True))


def test_service_rejects_malformed_model_output():
    service = OpenAIFeedbackService(api_key="", client=_mock_client(content='{"overallFeedback": "x"}'))
    with pytest.raises(FeedbackError):
        asyncio.run(service.request_feedback("What?", "A", "A", ["one"], REASONING, True))


# --- Progress fold ---


def test_progress_fold():
    feedback = ReasoningFeedback(technique1Feedback="a", technique2Feedback="b", overallFeedback="c")
    progress = FeedbackProgress(total=3)
    progress = progress.apply(FeedbackEvent(attempt_id=1, feedback=feedback))
    progress = progress.apply(FeedbackEvent(attempt_id=2, error="boom"))
    assert progress.completed == 1
    assert progress.failed == 1
    assert not progress.done
    assert progress.percent == 33.3
    progress = progress.apply(FeedbackEvent(attempt_id=3, feedback=feedback))
    assert progress.done
    assert progress.results == {1: feedback, 2: "boom", 3: feedback}


def test_progress_percent_of_empty_batch():
    assert FeedbackProgress(total=0).percent == 0.0
    assert FeedbackProgress(total=0).done


# --- Batch generation ---


def test_one_failure_does_not_affect_the_others(requests_db):
    db_path, requests = requests_db
    service = FakeFeedbackService(fail_prompts={"Prompt 2"})
    progress = asyncio.run(generate_feedback(requests, service, db_path))

    assert progress.total == 3
    assert progress.completed == 2
    assert progress.failed == 1
    assert progress.percent == 66.7

    first, second, third = (get_reasoning(db_path, r.attempt_id) for r in requests)
    assert first.technique_1_feedback == "t1 Prompt 1"
    assert first.overall_feedback == "overall Prompt 1"
    assert third.technique_2_feedback == "t2 Prompt 3"
    assert second.technique_1_feedback is None
    assert second.user_reasoning == REASONING


def test_malformed_response_counts_as_failure(requests_db):
    db_path, requests = requests_db
    service = FakeFeedbackService(malformed_prompts={"Prompt 1"})
    progress = asyncio.run(generate_feedback(requests, service, db_path))
    assert progress.completed == 2
    assert progress.failed == 1
    assert isinstance(progress.results[requests[0].attempt_id], str)
    assert get_reasoning(db_path, requests[0].attempt_id).overall_feedback is None


def test_every_request_is_attempted(requests_db):
    db_path, requests = requests_db
    service = FakeFeedbackService(fail_prompts={"Prompt 1", "Prompt 2", "Prompt 3"})
    progress = asyncio.run(generate_feedback(requests, service, db_path))
    assert sorted(service.calls) == ["Prompt 1", "Prompt 2", "Prompt 3"]
    assert progress.failed == 3
    assert progress.done


def test_progress_callback_reports_each_settlement(requests_db):
    db_path, requests = requests_db
    seen = []
    asyncio.run(generate_feedback(
        requests, FakeFeedbackService(fail_prompts={"Prompt 3"}), db_path,
        on_progress=lambda progress, event: seen.append((progress.settled, event.ok)),
    ))
    assert [settled for settled, _ in seen] == [1, 2, 3]
    assert sorted(ok for _, ok in seen) == [False, True, True]


def test_requests_without_reasoning_are_skipped(requests_db):
    db_path, requests = requests_db
    blank = FeedbackRequest(
        attempt_id=999, question=requests[0].question, user_answer="A", is_correct=True, reasoning="   ",
    )
    service = FakeFeedbackService()
    progress = asyncio.run(generate_feedback([blank, requests[0]], service, db_path))
    assert progress.total == 1
    assert service.calls == ["Prompt 1"]


def test_feedback_that_cannot_be_saved_still_counts(tmp_path, requests_db):
    _, requests = requests_db
    other_db = str(tmp_path / "no_tables.db")
    progress = asyncio.run(generate_feedback(requests[:1], FakeFeedbackService(), other_db))
    assert progress.completed == 1
    assert progress.failed == 0


class GatedFeedbackService(FakeFeedbackService):
    """Holds every call until `expected` calls are in flight at once."""

    def __init__(self, expected, release_order=None):
        super().__init__()
        self.expected = expected
        self.release_order = release_order
        self.all_in_flight = asyncio.Event()
        self.in_flight = 0

    async def request_feedback(self, question_prompt, user_answer, correct_answer, options, user_reasoning, is_correct):
        self.in_flight += 1
        if self.in_flight == self.expected:
            self.all_in_flight.set()
        await asyncio.wait_for(self.all_in_flight.wait(), timeout=2)
        if self.release_order is not None:
            await asyncio.sleep(0.05 * self.release_order.index(question_prompt))
        return await super().request_feedback(
            question_prompt, user_answer, correct_answer, options, user_reasoning, is_correct,
        )


def test_requests_are_in_flight_together(requests_db):
    db_path, requests = requests_db
    service = GatedFeedbackService(expected=3)
    progress = asyncio.run(generate_feedback(requests, service, db_path))
    assert service.all_in_flight.is_set()
    assert progress.completed == 3


def test_events_arrive_in_completion_order(requests_db):
    db_path, requests = requests_db
    service = GatedFeedbackService(expected=3, release_order=["Prompt 3", "Prompt 2", "Prompt 1"])
    seen = []
    progress = asyncio.run(generate_feedback(
        requests, service, db_path, on_progress=lambda progress, event: seen.append(event.attempt_id),
    ))
    assert seen == [requests[2].attempt_id, requests[1].attempt_id, requests[0].attempt_id]
    assert progress.completed == 3
    assert get_reasoning(db_path, requests[0].attempt_id).overall_feedback == "overall Prompt 1"
