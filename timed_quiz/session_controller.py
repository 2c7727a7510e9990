"""
Quiz session controller.

Owns the state of one quiz attempt and serializes every event that mutates
it: user selections and advances, timer ticks and timeouts, and retries.
All operations are synchronous and must be called from the event loop the
session's timers run on, so two mutations never interleave.
"""
import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional, Set

from .errors import AuthRequiredError, DataNotFoundError, PersistenceError, QuizError
from .models import AdvanceReason, Phase, Quiz, QuizSettings, Session
from .quiz_engine import QuizEngine, QuizTimer, TimerLifecycleLogger, is_correct


class SessionListener:
    """
    Receives session notifications. All hooks are no-ops by default.

    Hooks are called synchronously after the session state has changed.
    Exceptions raised by a hook are logged and do not affect the session.
    """

    def on_question(self, session: Session) -> None:
        """A question is being presented (first question, next question or retry)."""

    def on_tick(self, session: Session) -> None:
        """The countdown of the current question ticked."""

    def on_completed(self, session: Session) -> None:
        """The last question was answered or timed out."""

    def on_retry(self, session: Session) -> None:
        """A completed session was restarted."""

    def on_failed(self, session: Session, error: Exception) -> None:
        """The session entered the failed phase."""

    def on_error(self, error: Exception) -> None:
        """A non-fatal error occurred (persistence, authentication, data source)."""


class SessionController:
    """
    State machine for a timed, sequential multiple-choice quiz.

    Phases move LOADING -> PRESENTING -> COMPLETED, COMPLETED -> PRESENTING on
    retry, and any phase -> FAILED on a data error. At most one countdown
    timer is live at a time; every transition cancels it before anything
    else happens, and callbacks from a superseded timer are discarded.
    """

    def __init__(
        self,
        auth_provider,
        result_reporter,
        analytics_sink=None,
        settings: Optional[QuizSettings] = None,
        listener: Optional[SessionListener] = None,
        tick_interval: float = 1.0,
        session_id: str = "default"
    ):
        """
        Initialize the session controller.

        Args:
            auth_provider: Provides current_user_id() at persistence time
            result_reporter: Provides async persist(user_id, quiz_id, quiz_title, final_score, total_questions)
            analytics_sink: Optional best-effort record_event(name, attributes)
            settings: Quiz settings; timer_duration is the per-question time limit
            listener: Optional SessionListener for presentation updates
            tick_interval: Seconds between countdown ticks
            session_id: Identifier used in log records
        """
        self.logger = logging.getLogger(__name__)
        self.auth_provider = auth_provider
        self.result_reporter = result_reporter
        self.analytics_sink = analytics_sink
        self.listener = listener or SessionListener()
        self.settings = settings or QuizSettings()
        self.time_limit = self.settings.timer_duration
        self.quiz_engine = QuizEngine()
        self.session_id = session_id

        self.session = self._new_session()
        self.persist_task: Optional[asyncio.Task] = None

        self._tick_interval = tick_interval
        self._timer: Optional[QuizTimer] = None
        self._timer_generation = 0
        self._persist_tasks: Set[asyncio.Task] = set()
        self._unsubscribe: Optional[Callable[[], None]] = None

        self.logger.debug(f"SessionController created for session {session_id}")

    @property
    def phase(self) -> Phase:
        return self.session.phase

    @property
    def has_active_timer(self) -> bool:
        return self._timer is not None and self._timer.is_running

    def start(self, quiz: Optional[Quiz]) -> Session:
        """
        Start a new session for the given quiz.

        Any live session is discarded first, its timer cancelled.

        Args:
            quiz: Quiz to present; must contain at least one question

        Returns:
            The new Session, in the PRESENTING phase

        Raises:
            DataNotFoundError: If the quiz is missing or has no questions
        """
        self._cancel_timer("session start")

        if quiz is None or not quiz.questions:
            quiz_id = quiz.quiz_id if quiz is not None else None
            self.session = self._new_session(quiz_id=quiz_id, quiz=quiz)
            error = DataNotFoundError(
                "Quiz not found" if quiz is None else f"Quiz '{quiz.quiz_id}' has no questions"
            )
            self.fail(error)
            raise error

        self.session = self._new_session(quiz_id=quiz.quiz_id, quiz=quiz)
        self.session.phase = Phase.PRESENTING
        self._start_timer()

        self.logger.info(
            f"Started quiz session {self.session_id}: quiz='{quiz.quiz_id}', questions={quiz.total_questions}",
            extra={
                'event_type': 'session_started',
                'session_id': self.session_id,
                'quiz_id': quiz.quiz_id,
                'total_questions': quiz.total_questions,
                'time_limit': self.time_limit,
                'timestamp': time.time()
            }
        )
        self._record_event('quiz_start', {'quiz_id': quiz.quiz_id, 'quiz_title': quiz.title})
        self._notify('on_question', self.session)
        return self.session

    def select_option(self, option: str) -> bool:
        """
        Set the pending selection for the current question.

        Ignored outside the PRESENTING phase. Calling it again before an
        advance replaces the previous selection.

        Returns:
            True if the selection was recorded, False if ignored
        """
        session = self.session
        if session.phase is not Phase.PRESENTING:
            self.logger.debug(
                f"Ignoring selection for session {self.session_id} in phase {session.phase.value}"
            )
            return False

        session.selected_option = option
        self._record_event('select_option', {
            'quiz_id': session.quiz_id,
            'question_number': session.current_question_index + 1,
            'option_selected': option
        })
        return True

    def advance(self, reason: AdvanceReason = AdvanceReason.MANUAL) -> bool:
        """
        Score the current question and move to the next one or to completion.

        Outside the PRESENTING phase this is a no-op, which is what makes a
        late timeout after a manual advance (or a repeated advance on the
        last question) harmless.

        Args:
            reason: Whether the user or the countdown triggered the advance

        Returns:
            True if the advance took effect, False if it was discarded
        """
        session = self.session
        if session.phase is not Phase.PRESENTING:
            self.logger.debug(
                f"Discarding {reason.value} advance for session {self.session_id} "
                f"in phase {session.phase.value}",
                extra={
                    'event_type': 'advance_discarded',
                    'session_id': self.session_id,
                    'reason': reason.value,
                    'phase': session.phase.value,
                    'timestamp': time.time()
                }
            )
            return False

        # Release the countdown before touching any state.
        self._cancel_timer(f"{reason.value} advance")

        question = session.current_question
        correct = is_correct(question, session.selected_option)
        if correct:
            session.score += 1

        self._record_event('answer_question', {
            'quiz_id': session.quiz_id,
            'question_number': session.current_question_index + 1,
            'is_correct': correct,
            'reason': reason.value
        })
        self.logger.debug(
            f"Question {session.current_question_index + 1}/{session.total_questions} "
            f"answered ({reason.value}) in session {self.session_id}: correct={correct}"
        )

        session.selected_option = None

        if not session.is_last_question:
            session.remaining_seconds = self.time_limit
            session.current_question_index += 1
            self._start_timer()
            self._notify('on_question', session)
            return True

        session.phase = Phase.COMPLETED
        self.logger.info(
            f"Quiz completed for session {self.session_id}: score {session.score}/{session.total_questions}",
            extra={
                'event_type': 'session_completed',
                'session_id': self.session_id,
                'quiz_id': session.quiz_id,
                'score': session.score,
                'total_questions': session.total_questions,
                'timestamp': time.time()
            }
        )
        self._record_event('quiz_complete', {
            'quiz_id': session.quiz_id,
            'score': session.score,
            'total_questions': session.total_questions
        })
        self._spawn_persist(session)
        self._notify('on_completed', session)
        return True

    def retry(self) -> bool:
        """
        Restart a completed session from its first question.

        Returns:
            True if the session was restarted, False if not in COMPLETED
        """
        session = self.session
        if session.phase is not Phase.COMPLETED:
            self.logger.debug(
                f"Ignoring retry for session {self.session_id} in phase {session.phase.value}"
            )
            return False

        self._cancel_timer("retry")
        session.score = 0
        session.current_question_index = 0
        session.selected_option = None
        session.remaining_seconds = self.time_limit
        session.phase = Phase.PRESENTING
        self._start_timer()

        self.logger.info(f"Retrying quiz '{session.quiz_id}' in session {self.session_id}")
        self._record_event('quiz_retry', {'quiz_id': session.quiz_id})
        self._notify('on_retry', session)
        self._notify('on_question', session)
        return True

    def load(self, quiz_id: str, question_source) -> None:
        """
        Subscribe to a quiz and start the session when it is delivered.

        A previous subscription is dropped and any live session discarded.
        Delivered questions are ordered and limited according to the
        controller's settings before the session starts.

        Args:
            quiz_id: Identifier of the quiz to load
            question_source: Provides subscribe(quiz_id, on_data, on_error)
        """
        self._cancel_timer("load")
        self._drop_subscription()
        self.session = self._new_session(quiz_id=quiz_id)

        self.logger.info(f"Loading quiz '{quiz_id}' for session {self.session_id}")
        self._unsubscribe = question_source.subscribe(
            quiz_id,
            self._on_quiz_data,
            self._on_quiz_error
        )

    def fail(self, error: Exception) -> None:
        """Move the session to the terminal FAILED phase and report the error."""
        self._cancel_timer("failure")
        previous_phase = self.session.phase
        self.session.phase = Phase.FAILED
        self.session.selected_option = None

        self.logger.error(
            f"Session {self.session_id} failed ({previous_phase.value} -> failed): {error}",
            extra={
                'event_type': 'session_failed',
                'session_id': self.session_id,
                'quiz_id': self.session.quiz_id,
                'error_type': type(error).__name__,
                'timestamp': time.time()
            }
        )
        self._notify('on_failed', self.session, error)

    def close(self) -> None:
        """Tear down the session: cancel the timer and drop the quiz subscription."""
        self._cancel_timer("teardown")
        self._drop_subscription()
        self.logger.info(
            f"Closed session {self.session_id}",
            extra={
                'event_type': 'session_closed',
                'session_id': self.session_id,
                'phase': self.session.phase.value,
                'timestamp': time.time()
            }
        )

    def get_progress(self) -> Dict[str, Any]:
        """
        Get progress information for the session.

        Returns:
            Dictionary with quiz, position, score, countdown and phase
        """
        session = self.session
        return {
            'quiz_id': session.quiz_id,
            'quiz_title': session.quiz.title if session.quiz else None,
            'current_question': session.current_question_index + 1,
            'total_questions': session.total_questions,
            'score': session.score,
            'remaining_seconds': session.remaining_seconds,
            'selected_option': session.selected_option,
            'phase': session.phase.value
        }

    def _new_session(self, quiz_id: Optional[str] = None, quiz: Optional[Quiz] = None) -> Session:
        return Session(
            quiz_id=quiz_id,
            quiz=quiz,
            remaining_seconds=self.time_limit,
            time_limit=self.time_limit
        )

    def _start_timer(self) -> None:
        self._timer_generation += 1
        generation = self._timer_generation

        timer = QuizTimer(self.session_id, self._tick_interval)
        self._timer = timer
        timer.start(
            self.time_limit,
            lambda remaining: self._handle_tick(generation, remaining),
            lambda: self._handle_timeout(generation)
        )

    def _cancel_timer(self, reason: str) -> None:
        if self._timer is None:
            return
        timer = self._timer
        self._timer = None
        self._timer_generation += 1
        timer.cancel()
        TimerLifecycleLogger.log_timer_state_transition(
            self.session_id,
            "active",
            "released",
            reason
        )

    def _is_current_timer(self, generation: int, event: str) -> bool:
        if generation != self._timer_generation or self.session.phase is not Phase.PRESENTING:
            TimerLifecycleLogger.log_race_condition_detected(
                self.session_id,
                f"Discarded stale {event} from timer generation {generation} "
                f"(current {self._timer_generation}, phase {self.session.phase.value})"
            )
            return False
        return True

    def _handle_tick(self, generation: int, remaining: int) -> None:
        if not self._is_current_timer(generation, "tick"):
            return
        self.session.remaining_seconds = remaining
        self._notify('on_tick', self.session)

    def _handle_timeout(self, generation: int) -> None:
        if not self._is_current_timer(generation, "timeout"):
            return
        self.advance(AdvanceReason.TIMEOUT)

    def _spawn_persist(self, session: Session) -> None:
        task = asyncio.get_running_loop().create_task(
            self._persist_result(
                session.quiz_id,
                session.quiz.title,
                session.score,
                session.total_questions
            )
        )
        self.persist_task = task
        self._persist_tasks.add(task)
        task.add_done_callback(self._persist_tasks.discard)

    async def _persist_result(self, quiz_id: str, quiz_title: str, final_score: int, total_questions: int) -> None:
        try:
            user_id = self.auth_provider.current_user_id()
            await self.result_reporter.persist(user_id, quiz_id, quiz_title, final_score, total_questions)
        except (AuthRequiredError, PersistenceError) as e:
            self.logger.error(
                f"Failed to save score for session {self.session_id}: {e}",
                extra={
                    'event_type': 'score_persist_failed',
                    'session_id': self.session_id,
                    'quiz_id': quiz_id,
                    'error_type': type(e).__name__,
                    'timestamp': time.time()
                }
            )
            self._notify('on_error', e)
        except Exception as e:
            self.logger.exception(f"Unexpected error saving score for session {self.session_id}")
            self._notify('on_error', PersistenceError(f"Failed to save score: {e}"))

    def _on_quiz_data(self, quiz: Quiz) -> None:
        if self.session.phase is not Phase.LOADING:
            self.logger.debug(
                f"Ignoring delivery of quiz '{quiz.quiz_id}' for session {self.session_id} "
                f"in phase {self.session.phase.value}"
            )
            return
        if quiz.questions:
            quiz = self.quiz_engine.build_session_quiz(quiz, self.settings)
        try:
            self.start(quiz)
        except DataNotFoundError:
            # fail() has already moved the session to FAILED and notified the listener
            self.logger.debug(f"Delivered quiz '{quiz.quiz_id}' could not be started")

    def _on_quiz_error(self, error: Exception) -> None:
        if not isinstance(error, QuizError):
            error = DataNotFoundError(f"Failed to fetch quiz: {error}")
        if self.session.phase is Phase.LOADING:
            self.fail(error)
        else:
            self.logger.warning(f"Quiz source error for session {self.session_id}: {error}")
            self._notify('on_error', error)

    def _drop_subscription(self) -> None:
        if self._unsubscribe is not None:
            unsubscribe = self._unsubscribe
            self._unsubscribe = None
            unsubscribe()

    def _record_event(self, name: str, attributes: Dict[str, Any]) -> None:
        if self.analytics_sink is None:
            return
        try:
            self.analytics_sink.record_event(name, attributes)
        except Exception as e:
            self.logger.debug(f"Analytics event '{name}' dropped: {e}")

    def _notify(self, hook: str, *args) -> None:
        try:
            getattr(self.listener, hook)(*args)
        except Exception:
            self.logger.exception(f"Session listener hook '{hook}' failed for session {self.session_id}")
