"""Reasoning feedback for finished sessions.

Every answer that came with written reasoning gets its own feedback request.
Requests run concurrently and settle independently: a failed or malformed
response is reported for that answer alone and never cancels the others.
Successful feedback is saved as soon as it arrives.
"""
import asyncio
import json
import logging
import sqlite3
from dataclasses import dataclass, field, replace
from typing import AsyncIterator, Callable, Optional, Protocol, Sequence

from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError

from practice_tutor.attempts import update_reasoning_feedback
from practice_tutor.errors import FeedbackError
from practice_tutor.models import Question, ReasoningFeedback

logger = logging.getLogger(__name__)

MIN_REASONING_LENGTH = 20

SYSTEM_PROMPT = """You are an expert tutor who evaluates a student's reasoning on a multiple-choice question using two techniques.

Technique 1, first-principles elimination: check whether the student ruled options out from basic principles, considering which options are safe or unsafe before which are effective.
Technique 2, reverse engineering the error: start from the discrepancy in the question, find the trap or the fine detail, and identify where the student's reasoning went off track, if it did.

If the answer is correct, use technique 1 to confirm the reasoning was sound. If it is incorrect, use both techniques to locate the failure.
Be specific and constructive. Keep each piece of feedback to 3-5 sentences.

Return only a JSON object with exactly these keys:
{"technique1Feedback": "...", "technique2Feedback": "...", "overallFeedback": "..."}"""


class FeedbackService(Protocol):
    async def request_feedback(
        self,
        question_prompt: str,
        user_answer: str,
        correct_answer: str,
        options: Sequence[str],
        user_reasoning: str,
        is_correct: bool,
    ) -> ReasoningFeedback:
        ...


def build_user_prompt(
    question_prompt: str,
    user_answer: str,
    correct_answer: str,
    options: Sequence[str],
    user_reasoning: str,
    is_correct: bool,
) -> str:
    lines = [f'Question: "{question_prompt}"', "", "Options:"]
    for index, option in enumerate(options):
        lines.append(f"{chr(ord('A') + index)}) {option}")
    lines += [
        "",
        f"Correct answer: {correct_answer}",
        f"Student answer: {user_answer or '(no answer)'}",
        f"Is it correct?: {'Yes' if is_correct else 'No'}",
        "",
        "Student reasoning:",
        f'"{user_reasoning}"',
    ]
    return "\n".join(lines)


def parse_feedback(raw: str) -> ReasoningFeedback:
    """Validate a model response; all three feedback fields must be present."""
    try:
        return ReasoningFeedback.model_validate(json.loads(raw or "{}"))
    except json.JSONDecodeError as e:
        raise FeedbackError(f"Invalid response format: {e}") from e
    except ValidationError as e:
        raise FeedbackError(f"Response is missing required feedback fields: {e}") from e


class OpenAIFeedbackService:
    """Feedback service backed by an OpenAI chat model in JSON mode."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        timeout: float = 60.0,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        client: Optional[AsyncOpenAI] = None,
    ):
        if client is None and not api_key:
            raise FeedbackError("An OpenAI API key is required for reasoning feedback")
        self.client = client or AsyncOpenAI(api_key=api_key, timeout=timeout)
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def request_feedback(
        self,
        question_prompt: str,
        user_answer: str,
        correct_answer: str,
        options: Sequence[str],
        user_reasoning: str,
        is_correct: bool,
    ) -> ReasoningFeedback:
        if len((user_reasoning or "").strip()) < MIN_REASONING_LENGTH:
            raise FeedbackError(f"Reasoning must be at least {MIN_REASONING_LENGTH} characters")
        if not options:
            raise FeedbackError("Question has no options")

        prompt = build_user_prompt(
            question_prompt, user_answer, correct_answer, options, user_reasoning, is_correct,
        )
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                response_format={"type": "json_object"},
            )
        except OpenAIError as e:
            raise FeedbackError(f"Feedback request failed: {e}") from e

        if not response.choices:
            raise FeedbackError("Empty response from model")
        return parse_feedback(response.choices[0].message.content)


@dataclass(frozen=True)
class FeedbackRequest:
    attempt_id: int
    question: Question
    user_answer: str
    is_correct: bool
    reasoning: str


@dataclass(frozen=True)
class FeedbackEvent:
    attempt_id: int
    feedback: Optional[ReasoningFeedback] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.feedback is not None


@dataclass(frozen=True)
class FeedbackProgress:
    """Running tally of a feedback batch, folded from its events."""
    total: int
    completed: int = 0
    failed: int = 0
    results: dict = field(default_factory=dict)

    @property
    def settled(self) -> int:
        return self.completed + self.failed

    @property
    def done(self) -> bool:
        return self.settled >= self.total

    @property
    def percent(self) -> float:
        if self.total == 0:
            return 0.0
        return round(self.completed / self.total * 100, 1)

    def apply(self, event: FeedbackEvent) -> "FeedbackProgress":
        results = {**self.results, event.attempt_id: event.feedback if event.ok else event.error}
        if event.ok:
            return replace(self, completed=self.completed + 1, results=results)
        return replace(self, failed=self.failed + 1, results=results)


async def _evaluate(request: FeedbackRequest, service: FeedbackService, db_path: str) -> FeedbackEvent:
    question = request.question
    try:
        feedback = await service.request_feedback(
            question_prompt=question.prompt,
            user_answer=request.user_answer,
            correct_answer=question.answer_key,
            options=list(question.options),
            user_reasoning=request.reasoning,
            is_correct=request.is_correct,
        )
    except FeedbackError as e:
        logger.warning("Feedback for attempt %s failed: %s", request.attempt_id, e)
        return FeedbackEvent(attempt_id=request.attempt_id, error=str(e))
    except Exception as e:
        logger.exception("Unexpected error requesting feedback for attempt %s", request.attempt_id)
        return FeedbackEvent(attempt_id=request.attempt_id, error=str(e) or type(e).__name__)

    try:
        saved = await asyncio.to_thread(update_reasoning_feedback, db_path, request.attempt_id, feedback)
    except sqlite3.Error as e:
        logger.warning("Could not save feedback for attempt %s: %s", request.attempt_id, e)
    else:
        if not saved:
            logger.warning("No reasoning record for attempt %s, feedback not saved", request.attempt_id)
    return FeedbackEvent(attempt_id=request.attempt_id, feedback=feedback)


async def stream_feedback(
    requests: Sequence[FeedbackRequest],
    service: FeedbackService,
    db_path: str,
) -> AsyncIterator[FeedbackEvent]:
    """Yield one event per request, in completion order."""
    pending = [r for r in requests if r.reasoning and r.reasoning.strip()]
    tasks = [asyncio.ensure_future(_evaluate(r, service, db_path)) for r in pending]
    for next_done in asyncio.as_completed(tasks):
        yield await next_done


async def generate_feedback(
    requests: Sequence[FeedbackRequest],
    service: FeedbackService,
    db_path: str,
    on_progress: Optional[Callable[[FeedbackProgress, FeedbackEvent], None]] = None,
) -> FeedbackProgress:
    """Run a feedback batch to completion and return the final tally."""
    pending = [r for r in requests if r.reasoning and r.reasoning.strip()]
    progress = FeedbackProgress(total=len(pending))
    async for event in stream_feedback(pending, service, db_path):
        progress = progress.apply(event)
        if on_progress is not None:
            on_progress(progress, event)
    logger.info("Feedback finished: %d of %d succeeded", progress.completed, progress.total)
    return progress
