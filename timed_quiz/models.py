"""
Core data models for the timed quiz session.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


DEFAULT_TIME_LIMIT = 30


class Phase(Enum):
    """Discrete states of a quiz session."""
    LOADING = "loading"
    PRESENTING = "presenting"
    COMPLETED = "completed"
    FAILED = "failed"


class AdvanceReason(Enum):
    """What triggered an advance."""
    MANUAL = "manual"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class Question:
    """Represents a single multiple-choice question."""
    prompt: str
    options: Tuple[str, ...]
    correct_option: str


@dataclass(frozen=True)
class Quiz:
    """An ordered, immutable set of questions loaded once per session."""
    quiz_id: str
    title: str
    questions: Tuple[Question, ...] = ()

    @property
    def total_questions(self) -> int:
        return len(self.questions)


@dataclass
class QuizSettings:
    """Configuration settings for a quiz session."""
    question_count: Optional[int] = None
    random_order: bool = False
    timer_duration: int = DEFAULT_TIME_LIMIT


@dataclass
class Session:
    """Mutable state of one quiz attempt, owned by a single SessionController."""
    quiz_id: Optional[str] = None
    quiz: Optional[Quiz] = None
    current_question_index: int = 0
    selected_option: Optional[str] = None
    score: int = 0
    remaining_seconds: int = DEFAULT_TIME_LIMIT
    phase: Phase = Phase.LOADING
    time_limit: int = DEFAULT_TIME_LIMIT

    @property
    def total_questions(self) -> int:
        return self.quiz.total_questions if self.quiz else 0

    @property
    def current_question(self) -> Optional[Question]:
        if self.quiz is None or self.current_question_index >= self.total_questions:
            return None
        return self.quiz.questions[self.current_question_index]

    @property
    def is_last_question(self) -> bool:
        return self.current_question_index == self.total_questions - 1


@dataclass
class ScoreRecord:
    """Final result of a completed session, one per (user, quiz) pair."""
    user_id: str
    quiz_id: str
    quiz_title: str
    final_score: int
    total_questions: int
    completed_at: str = field(default="")
