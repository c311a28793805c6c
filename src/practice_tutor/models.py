"""Data classes for the practice engine domain model."""
import json
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class NodeKind(str, Enum):
    TOPIC = "topic"
    SUBTOPIC = "subtopic"


class SelectionMode(str, Enum):
    BY_SUBTOPICS = "by_subtopics"
    BY_TOPICS = "by_topics"
    BY_FULL_ROUTE = "by_full_route"
    BY_ERROR_HISTORY = "by_error_history"


class AttemptSource(str, Enum):
    PRACTICE = "practice"
    QUESTION_BANK = "question_bank"
    ERROR_CODING = "error_coding"


@dataclass
class Route:
    id: int
    user_id: str
    name: str
    objective: Optional[str] = None
    created_at: Optional[str] = None


@dataclass
class ContentNode:
    id: int
    parent_id: Optional[int]
    kind: str
    display_name: Optional[str]
    order_index: int = 0
    estimated_time: Optional[int] = None
    difficulty: Optional[str] = None
    route_id: Optional[int] = None

    @classmethod
    def from_row(cls, row) -> "ContentNode":
        return cls(
            id=row["id"],
            parent_id=row["parent_id"],
            kind=row["item_type"],
            display_name=row["custom_name"],
            order_index=row["order_index"] or 0,
            estimated_time=row["estimated_time"],
            difficulty=row["difficulty"],
            route_id=row["route_id"],
        )


@dataclass(frozen=True)
class Question:
    id: int
    prompt: str
    options: tuple
    answer_key: str
    topic_name: Optional[str] = None
    subtopic_name: Optional[str] = None
    explanation: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> "Question":
        return cls(
            id=row["id"],
            prompt=row["prompt"],
            options=tuple(json.loads(row["options"] or "[]")),
            answer_key=row["answer_key"],
            topic_name=row["topic_name"],
            subtopic_name=row["subtopic_name"],
            explanation=row["explanation"],
        )


@dataclass(frozen=True)
class SessionConfig:
    mode: SelectionMode = SelectionMode.BY_SUBTOPICS
    time_per_question: int = 60
    questions_per_leaf: int = 4
    interleaving_enabled: bool = True
    reasoning_enabled: bool = False
    max_leaves_for_error_history: int = 10

    def __post_init__(self):
        if self.time_per_question <= 0:
            raise ValueError("time_per_question must be positive")
        if self.questions_per_leaf <= 0:
            raise ValueError("questions_per_leaf must be positive")
        if self.max_leaves_for_error_history <= 0:
            raise ValueError("max_leaves_for_error_history must be positive")


@dataclass
class Attempt:
    question_id: int
    user_answer: str
    is_correct: bool
    time_spent: int
    session_id: str
    user_id: str
    source: str = AttemptSource.PRACTICE.value
    id: Optional[int] = None
    error_type: Optional[str] = None
    answered_at: Optional[str] = None


@dataclass
class ReasoningRecord:
    attempt_id: int
    user_reasoning: str
    technique_1_feedback: Optional[str] = None
    technique_2_feedback: Optional[str] = None
    overall_feedback: Optional[str] = None


@dataclass
class ErrorHistoryEntry:
    subtopic_name: Optional[str]
    topic_name: str
    error_count: int = 0

    @property
    def label(self) -> str:
        return self.subtopic_name or self.topic_name


@dataclass
class SessionResult:
    """Outcome of one question in a session, as shown on the report screen."""
    question: Question
    user_answer: str
    is_correct: bool
    time_spent: int
    timed_out: bool = False
    attempt_id: Optional[int] = None
    reasoning: str = ""


class ReasoningFeedback(BaseModel):
    """Feedback on a student's reasoning, one entry per evaluation technique."""

    model_config = ConfigDict(str_strip_whitespace=True)

    technique1Feedback: str = Field(min_length=1)
    technique2Feedback: str = Field(min_length=1)
    overallFeedback: str = Field(min_length=1)

    def as_columns(self) -> dict:
        return {
            "technique_1_feedback": self.technique1Feedback,
            "technique_2_feedback": self.technique2Feedback,
            "overall_feedback": self.overallFeedback,
        }
