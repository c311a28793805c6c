"""Timed practice sessions.

A session is a small state machine: selecting -> running -> completed. The
transition functions below are pure; they take a state and return the next
state plus, when a question was answered, a `Submission` describing it.
`SessionRunner` holds the current state, records submissions as attempts and
keeps the per-question timer in step with the state. Time only moves when
something calls `tick()` (the asyncio `Countdown`) or `elapse()` (a blocking
front end measuring wall-clock time).
"""
import asyncio
import logging
import sqlite3
import uuid
from dataclasses import dataclass, replace
from typing import Callable, Optional, Sequence, Union

from practice_tutor.answers import is_correct
from practice_tutor.attempts import save_attempt, save_reasoning
from practice_tutor.errors import InvalidTransition, NoQuestionsAvailable
from practice_tutor.feedback import MIN_REASONING_LENGTH, FeedbackRequest
from practice_tutor.models import Attempt, AttemptSource, Question, SessionConfig, SessionResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SelectingState:
    name: str = "selection"


@dataclass(frozen=True)
class RunningState:
    session_id: str
    questions: tuple
    current_index: int
    time_remaining: int
    selected_answer: str = ""
    reasoning: str = ""
    name: str = "running"

    @property
    def current_question(self) -> Question:
        return self.questions[self.current_index]

    @property
    def is_last(self) -> bool:
        return self.current_index >= len(self.questions) - 1


@dataclass(frozen=True)
class CompletedState:
    session_id: str
    questions: tuple
    name: str = "completed"


SessionState = Union[SelectingState, RunningState, CompletedState]


@dataclass(frozen=True)
class Submission:
    question: Question
    index: int
    user_answer: str
    is_correct: bool
    time_spent: int
    reasoning: str
    timed_out: bool


def _require_running(state, action: str) -> RunningState:
    if not isinstance(state, RunningState):
        raise InvalidTransition(f"Cannot {action} while the session is in {state.name}")
    return state


def start(questions: Sequence[Question], config: SessionConfig, session_id: Optional[str] = None) -> RunningState:
    if not questions:
        raise NoQuestionsAvailable()
    return RunningState(
        session_id=session_id or str(uuid.uuid4()),
        questions=tuple(questions),
        current_index=0,
        time_remaining=config.time_per_question,
    )


def select_answer(state: SessionState, answer: str) -> RunningState:
    state = _require_running(state, "select an answer")
    return replace(state, selected_answer=answer or "")


def set_reasoning(state: SessionState, text: str) -> RunningState:
    state = _require_running(state, "write reasoning")
    return replace(state, reasoning=text or "")


def reasoning_ready(state: RunningState, config: SessionConfig) -> bool:
    if not config.reasoning_enabled:
        return True
    return len(state.reasoning.strip()) >= MIN_REASONING_LENGTH


def can_submit(state: SessionState, config: SessionConfig) -> bool:
    return (
        isinstance(state, RunningState)
        and bool(state.selected_answer.strip())
        and reasoning_ready(state, config)
    )


def _record(state: RunningState, config: SessionConfig, timed_out: bool) -> tuple:
    question = state.current_question
    if timed_out:
        time_spent = config.time_per_question
    else:
        time_spent = config.time_per_question - max(state.time_remaining, 0)
    submission = Submission(
        question=question,
        index=state.current_index,
        user_answer=state.selected_answer,
        is_correct=is_correct(state.selected_answer, question.answer_key, question.options),
        time_spent=time_spent,
        reasoning=state.reasoning,
        timed_out=timed_out,
    )
    if state.is_last:
        return CompletedState(session_id=state.session_id, questions=state.questions), submission
    next_state = RunningState(
        session_id=state.session_id,
        questions=state.questions,
        current_index=state.current_index + 1,
        time_remaining=config.time_per_question,
    )
    return next_state, submission


def submit(state: SessionState, config: SessionConfig) -> tuple:
    """Manual submit. Returns (state, None) unchanged when the answer is not ready."""
    state = _require_running(state, "submit")
    if not can_submit(state, config):
        return state, None
    return _record(state, config, timed_out=False)


def tick(state: SessionState, config: SessionConfig, seconds: int = 1) -> tuple:
    """Let `seconds` pass on the current question.

    Once the remaining time is zero or below the question is submitted with
    whatever answer is selected, bypassing the reasoning check. A late tick
    covering several seconds expires the question at once.
    """
    if not isinstance(state, RunningState):
        return state, None
    remaining = state.time_remaining - seconds if state.time_remaining > 0 else state.time_remaining
    if remaining <= 0:
        return _record(replace(state, time_remaining=0), config, timed_out=True)
    return replace(state, time_remaining=remaining), None


def abandon(state: SessionState) -> SelectingState:
    return SelectingState()


class Countdown:
    """One-second repeating timer for the running question, on the asyncio loop."""

    def __init__(self, on_tick: Callable[[], object], interval: float = 1.0, sleep=asyncio.sleep):
        self.on_tick = on_tick
        self.interval = interval
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._run())

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        while True:
            await self._sleep(self.interval)
            self.on_tick()


class SessionRunner:
    """Drives one practice session and records what the student does in it."""

    def __init__(
        self,
        db_path: str,
        config: SessionConfig,
        user_id: str,
        source: str = AttemptSource.PRACTICE.value,
        feedback_launcher: Optional[Callable[[list], object]] = None,
    ):
        self.db_path = db_path
        self.config = config
        self.user_id = user_id
        self.source = source
        self.feedback_launcher = feedback_launcher
        self.state: SessionState = SelectingState()
        self.results: list[SessionResult] = []
        self.timer = None
        self._carry = 0.0

    def attach_timer(self, timer) -> None:
        """Use `timer` (anything with start() and cancel()) as the question clock."""
        self.timer = timer

    @property
    def running(self) -> bool:
        return isinstance(self.state, RunningState)

    @property
    def completed(self) -> bool:
        return isinstance(self.state, CompletedState)

    @property
    def session_id(self) -> Optional[str]:
        return getattr(self.state, "session_id", None)

    @property
    def current_question(self) -> Optional[Question]:
        return self.state.current_question if self.running else None

    @property
    def time_remaining(self) -> int:
        return self.state.time_remaining if self.running else 0

    def start(self, questions: Sequence[Question], session_id: Optional[str] = None) -> None:
        if not isinstance(self.state, SelectingState):
            raise InvalidTransition(f"Cannot start a session that is {self.state.name}")
        self.state = start(questions, self.config, session_id)
        self.results = []
        self._carry = 0.0
        logger.info("Started session %s with %d questions", self.state.session_id, len(questions))
        self._restart_timer()

    def select_answer(self, answer: str) -> None:
        self.state = select_answer(self.state, answer)

    def set_reasoning(self, text: str) -> None:
        self.state = set_reasoning(self.state, text)

    def submit(self) -> Optional[SessionResult]:
        """Submit the selected answer. Returns None when the submit was rejected."""
        new_state, submission = submit(self.state, self.config)
        return self._apply(new_state, submission)

    def tick(self, seconds: int = 1) -> Optional[SessionResult]:
        new_state, submission = tick(self.state, self.config, seconds)
        return self._apply(new_state, submission)

    def elapse(self, seconds: float) -> Optional[SessionResult]:
        """Apply measured wall-clock time to the current question."""
        if not self.running:
            return None
        self._carry += max(seconds, 0.0)
        whole = int(self._carry)
        self._carry -= whole
        if whole == 0 and self.state.time_remaining > 0:
            return None
        return self.tick(whole)

    def abandon(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
        if self.running:
            logger.info("Session %s abandoned at question %d", self.state.session_id, self.state.current_index + 1)
        self.state = abandon(self.state)

    def _apply(self, new_state: SessionState, submission: Optional[Submission]) -> Optional[SessionResult]:
        self.state = new_state
        if submission is None:
            return None
        if self.timer is not None:
            self.timer.cancel()
        self._carry = 0.0

        result = self._persist(submission)
        self.results.append(result)

        if self.running:
            self._restart_timer()
        elif self.completed:
            logger.info("Session %s completed", self.session_id)
            if self.config.reasoning_enabled and self.feedback_launcher is not None:
                self.feedback_launcher(self.feedback_requests())
        return result

    def _persist(self, submission: Submission) -> SessionResult:
        attempt = Attempt(
            question_id=submission.question.id,
            user_answer=submission.user_answer,
            is_correct=submission.is_correct,
            time_spent=submission.time_spent,
            session_id=self.session_id,
            user_id=self.user_id,
            source=self.source,
        )
        attempt_id = None
        try:
            attempt_id = save_attempt(self.db_path, attempt)
        except sqlite3.Error as e:
            logger.warning("Could not save attempt for question %s: %s", submission.question.id, e)

        reasoning = submission.reasoning.strip() if self.config.reasoning_enabled else ""
        if attempt_id is not None and reasoning:
            try:
                save_reasoning(self.db_path, attempt_id, reasoning)
            except sqlite3.Error as e:
                logger.warning("Could not save reasoning for attempt %s: %s", attempt_id, e)
                reasoning = ""

        return SessionResult(
            question=submission.question,
            user_answer=submission.user_answer,
            is_correct=submission.is_correct,
            time_spent=submission.time_spent,
            timed_out=submission.timed_out,
            attempt_id=attempt_id,
            reasoning=reasoning,
        )

    def _restart_timer(self) -> None:
        if self.timer is not None:
            self.timer.start()

    def feedback_requests(self) -> list[FeedbackRequest]:
        """One request per answered question that has reasoning and a saved attempt."""
        requests = []
        for result in self.results:
            if not result.reasoning:
                continue
            if result.attempt_id is None:
                logger.warning("Skipping feedback for question %s: attempt was not saved", result.question.id)
                continue
            requests.append(FeedbackRequest(
                attempt_id=result.attempt_id,
                question=result.question,
                user_answer=result.user_answer,
                is_correct=result.is_correct,
                reasoning=result.reasoning,
            ))
        return requests
