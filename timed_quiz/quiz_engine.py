"""
Quiz engine core logic for timed quiz sessions.
Handles answer scoring, question selection and the per-question countdown.
"""
import random
import asyncio
import logging
import time
from typing import List, Optional, Callable, Any

from .models import Question, Quiz, QuizSettings

# Set up logger for timer operations
logger = logging.getLogger(__name__)


def is_correct(question: Question, selected_option: Optional[str]) -> bool:
    """
    Check a selection against the question's designated correct option.

    A missing selection is always incorrect.
    """
    if selected_option is None:
        return False
    return selected_option == question.correct_option


class TimerLifecycleLogger:
    """Structured logging for timer lifecycle events."""

    @staticmethod
    def log_timer_creation(session_id: str, duration: int) -> None:
        """Log timer creation event with structured data."""
        logger.debug(
            "Timer lifecycle: CREATION_START",
            extra={
                'event_type': 'timer_creation_start',
                'session_id': session_id,
                'duration': duration,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_created(session_id: str, duration: int, creation_time: float) -> None:
        """Log successful timer creation."""
        creation_duration = time.time() - creation_time
        logger.debug(
            f"Timer lifecycle: CREATED - Session {session_id}, Duration {duration}s, Setup time {creation_duration:.3f}s",
            extra={
                'event_type': 'timer_created',
                'session_id': session_id,
                'duration': duration,
                'creation_duration': creation_duration,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_start(session_id: str, task_id: str = None) -> None:
        """Log timer countdown start."""
        logger.debug(
            f"Timer lifecycle: COUNTDOWN_START - Session {session_id}",
            extra={
                'event_type': 'timer_countdown_start',
                'session_id': session_id,
                'task_id': task_id,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_update(session_id: str, remaining_time: int, total_duration: int) -> None:
        """Log timer update events (throttled to avoid spam)."""
        if total_duration <= 0:
            return
        if remaining_time % 10 == 0 or remaining_time <= 5:
            progress_percent = ((total_duration - remaining_time) / total_duration) * 100
            logger.debug(
                f"Timer lifecycle: UPDATE - Session {session_id}, Remaining {remaining_time}s ({progress_percent:.1f}% complete)",
                extra={
                    'event_type': 'timer_update',
                    'session_id': session_id,
                    'remaining_time': remaining_time,
                    'total_duration': total_duration,
                    'progress_percent': progress_percent,
                    'timestamp': time.time()
                }
            )

    @staticmethod
    def log_timer_completion(session_id: str, completion_type: str, total_duration: int) -> None:
        """Log timer completion (natural expiry or cancellation)."""
        logger.info(
            f"Timer lifecycle: COMPLETED - Session {session_id}, Type {completion_type}, Duration {total_duration}s",
            extra={
                'event_type': 'timer_completed',
                'session_id': session_id,
                'completion_type': completion_type,
                'total_duration': total_duration,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_state_transition(session_id: str, from_state: str, to_state: str, reason: str = None) -> None:
        """Log timer state transitions."""
        logger.debug(
            f"Timer lifecycle: STATE_TRANSITION - Session {session_id}, {from_state} -> {to_state}" +
            (f" ({reason})" if reason else ""),
            extra={
                'event_type': 'timer_state_transition',
                'session_id': session_id,
                'from_state': from_state,
                'to_state': to_state,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_error(session_id: str, error_type: str, error_message: str, operation: str) -> None:
        """Log timer-related errors with context."""
        logger.error(
            f"Timer lifecycle: ERROR - Session {session_id}, Operation {operation}, Type {error_type}: {error_message}",
            extra={
                'event_type': 'timer_error',
                'session_id': session_id,
                'error_type': error_type,
                'error_message': error_message,
                'operation': operation,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_race_condition_detected(session_id: str, details: str) -> None:
        """Log race condition detection."""
        logger.warning(
            f"Timer lifecycle: RACE_CONDITION - Session {session_id}: {details}",
            extra={
                'event_type': 'timer_race_condition',
                'session_id': session_id,
                'details': details,
                'timestamp': time.time()
            }
        )


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class QuizTimer:
    """
    Countdown timer scoped to a single question.

    The countdown runs as an asyncio task that ticks once per ``tick_interval``.
    When the remaining count reaches zero the timeout callback is delivered
    exactly once and the timer stops itself.
    """

    def __init__(self, session_id: str = None, tick_interval: float = 1.0):
        """Initialize the timer."""
        self._task: Optional[asyncio.Task] = None
        self._remaining_time = 0
        self._is_cancelled = False
        self._is_expired = False
        self._session_id = session_id
        self._tick_interval = tick_interval
        self._total_duration = 0

    def start(
        self,
        duration: int,
        tick_callback: Callable[[int], Any],
        timeout_callback: Callable[[], Any]
    ) -> asyncio.Task:
        """
        Start the countdown as a background task.

        Args:
            duration: Timer duration in ticks (seconds)
            tick_callback: Called after each tick with the remaining count
            timeout_callback: Called once when the countdown reaches zero

        Returns:
            The asyncio task running the countdown

        Raises:
            RuntimeError: If the timer was already started or cancelled
        """
        if self._task is not None or self._is_cancelled:
            raise RuntimeError(f"Timer for session {self._session_id} cannot be started twice")

        creation_time = time.time()
        TimerLifecycleLogger.log_timer_creation(self._session_id, duration)

        self._remaining_time = duration
        self._total_duration = duration
        self._task = asyncio.get_running_loop().create_task(
            self._run_countdown(tick_callback, timeout_callback)
        )

        TimerLifecycleLogger.log_timer_created(self._session_id, duration, creation_time)
        return self._task

    async def _run_countdown(
        self,
        tick_callback: Callable[[int], Any],
        timeout_callback: Callable[[], Any]
    ) -> None:
        TimerLifecycleLogger.log_timer_start(
            self._session_id,
            str(id(self._task)) if self._task else None
        )

        try:
            while self._remaining_time > 0:
                await asyncio.sleep(self._tick_interval)
                if self._is_cancelled:
                    break

                self._remaining_time -= 1
                TimerLifecycleLogger.log_timer_update(
                    self._session_id,
                    self._remaining_time,
                    self._total_duration
                )
                tick_callback(self._remaining_time)

                if self._is_cancelled:
                    break

            if self._is_cancelled:
                TimerLifecycleLogger.log_timer_completion(
                    self._session_id,
                    "cancelled",
                    self._total_duration
                )
                return

            self._is_expired = True
            TimerLifecycleLogger.log_timer_completion(
                self._session_id,
                "natural_expiry",
                self._total_duration
            )
            timeout_callback()

        except asyncio.CancelledError:
            self._is_cancelled = True
            TimerLifecycleLogger.log_timer_completion(
                self._session_id,
                "asyncio_cancelled",
                self._total_duration
            )
            raise
        except Exception as e:
            TimerLifecycleLogger.log_timer_error(
                self._session_id,
                "countdown_execution_error",
                str(e),
                "_run_countdown"
            )
            raise

    def cancel(self) -> bool:
        """
        Cancel the countdown timer.

        No tick or timeout callback is delivered after this returns.

        Returns:
            True if a live countdown was stopped, False otherwise
        """
        if self._is_cancelled:
            return False

        was_running = self.is_running
        self._is_cancelled = True

        task = self._task
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()
            TimerLifecycleLogger.log_timer_state_transition(
                self._session_id,
                "running",
                "cancelled",
                "task cancelled"
            )
        else:
            TimerLifecycleLogger.log_timer_state_transition(
                self._session_id,
                "running" if was_running else "idle",
                "cancelled",
                "no task to cancel"
            )
        return was_running

    @property
    def is_cancelled(self) -> bool:
        """Check if timer is cancelled."""
        return self._is_cancelled

    @property
    def is_running(self) -> bool:
        return (
            self._task is not None
            and not self._task.done()
            and not self._is_cancelled
            and not self._is_expired
        )

    @property
    def remaining_time(self) -> int:
        """Get remaining time in seconds."""
        return self._remaining_time


class QuizEngine:
    """Selects and orders the questions a session will present."""

    def select_questions(self, questions: List[Question], settings: QuizSettings) -> List[Question]:
        """
        Select and order questions based on quiz settings.

        Args:
            questions: List of available questions
            settings: Quiz configuration settings

        Returns:
            List of selected and ordered questions

        Raises:
            ValueError: If questions list is empty
        """
        if not questions:
            raise ValueError("Cannot select questions from empty list")

        # Make a copy to avoid modifying the original list
        selected_questions = list(questions)

        if settings.random_order:
            selected_questions = self.shuffle_questions(selected_questions)

        if settings.question_count is not None:
            selected_questions = self.limit_question_count(selected_questions, settings.question_count)

        return selected_questions

    def shuffle_questions(self, questions: List[Question]) -> List[Question]:
        """
        Shuffle questions randomly.

        Args:
            questions: List of questions to shuffle

        Returns:
            New list with questions in random order
        """
        shuffled = questions.copy()
        random.shuffle(shuffled)
        return shuffled

    def limit_question_count(self, questions: List[Question], count: int) -> List[Question]:
        """
        Limit the number of questions to the specified count.

        Note:
            If count is greater than available questions, returns all questions.
            If count is less than 1, returns empty list.
        """
        if count < 1:
            return []

        return questions[:count]

    def build_session_quiz(self, quiz: Quiz, settings: QuizSettings) -> Quiz:
        """
        Create the quiz a session will run, with questions selected per settings.

        Raises:
            ValueError: If the quiz has no questions
        """
        selected = self.select_questions(list(quiz.questions), settings)
        return Quiz(quiz_id=quiz.quiz_id, title=quiz.title, questions=tuple(selected))
