"""
Unit tests for the quiz session state machine.
"""
import unittest
import asyncio
import tempfile
from pathlib import Path
from unittest.mock import Mock, AsyncMock

from timed_quiz.auth import InMemoryAuthProvider
from timed_quiz.data_manager import DataManager
from timed_quiz.errors import AuthRequiredError, DataNotFoundError, PersistenceError, QuizValidationError
from timed_quiz.models import AdvanceReason, Phase, Quiz, QuizSettings
from timed_quiz.score_store import JsonScoreStore
from timed_quiz.session_controller import SessionController, SessionListener
from tests.test_fixtures import (
    AsyncTestHelpers,
    FakeQuestionSource,
    FakeResultReporter,
    RecordingListener,
    TestFixtures,
)

# Long enough that no tick fires during a synchronous test step
IDLE_TICK = 60


class SessionControllerTestCase(unittest.IsolatedAsyncioTestCase):
    """Shared setup for session controller tests."""

    tick_interval = IDLE_TICK

    async def asyncSetUp(self):
        self.reporter = FakeResultReporter()
        self.listener = RecordingListener()
        self.auth = InMemoryAuthProvider("user-1")
        self.controller = self.create_controller()
        self.quiz = TestFixtures.create_sample_quiz(question_count=2)

    async def asyncTearDown(self):
        self.controller.close()

    def create_controller(self, **overrides) -> SessionController:
        kwargs = {
            'auth_provider': self.auth,
            'result_reporter': self.reporter,
            'listener': self.listener,
            'tick_interval': self.tick_interval,
            'session_id': "test_session",
        }
        kwargs.update(overrides)
        return SessionController(**kwargs)

    def answer(self, option=None, reason=AdvanceReason.MANUAL) -> bool:
        if option is not None:
            self.controller.select_option(option)
        return self.controller.advance(reason)


class TestSessionStart(SessionControllerTestCase):
    """Test cases for starting a session."""

    async def test_initial_phase_is_loading(self):
        self.assertEqual(self.controller.phase, Phase.LOADING)
        self.assertFalse(self.controller.has_active_timer)

    async def test_start_presents_first_question(self):
        session = self.controller.start(self.quiz)

        self.assertIs(session, self.controller.session)
        self.assertEqual(session.phase, Phase.PRESENTING)
        self.assertEqual(session.quiz_id, "test_quiz")
        self.assertEqual(session.current_question_index, 0)
        self.assertEqual(session.score, 0)
        self.assertIsNone(session.selected_option)
        self.assertEqual(session.remaining_seconds, 30)
        self.assertTrue(self.controller.has_active_timer)
        self.assertEqual(self.listener.events, [('question', 0)])

    async def test_start_with_no_quiz_fails(self):
        with self.assertRaises(DataNotFoundError):
            self.controller.start(None)

        self.assertEqual(self.controller.phase, Phase.FAILED)
        self.assertFalse(self.controller.has_active_timer)
        self.assertEqual(self.listener.events, [('failed', 'DataNotFoundError')])

    async def test_start_with_empty_quiz_fails(self):
        empty_quiz = Quiz(quiz_id="empty", title="Empty")

        with self.assertRaises(DataNotFoundError) as context:
            self.controller.start(empty_quiz)

        self.assertIn("has no questions", str(context.exception))
        self.assertEqual(self.controller.phase, Phase.FAILED)
        self.assertEqual(self.controller.session.quiz_id, "empty")

    async def test_failed_session_ignores_user_events(self):
        with self.assertRaises(DataNotFoundError):
            self.controller.start(None)

        self.assertFalse(self.controller.select_option("4"))
        self.assertFalse(self.controller.advance())
        self.assertFalse(self.controller.retry())
        self.assertEqual(self.controller.phase, Phase.FAILED)

    async def test_restart_discards_running_session(self):
        self.controller.start(self.quiz)
        self.answer("4")

        other_quiz = TestFixtures.create_sample_quiz(quiz_id="other_quiz", question_count=3)
        session = self.controller.start(other_quiz)

        self.assertEqual(session.quiz_id, "other_quiz")
        self.assertEqual(session.current_question_index, 0)
        self.assertEqual(session.score, 0)
        self.assertEqual(self.reporter.calls, [])

    async def test_custom_time_limit_from_settings(self):
        controller = self.create_controller(settings=QuizSettings(timer_duration=45))
        try:
            session = controller.start(self.quiz)
            self.assertEqual(session.remaining_seconds, 45)
            self.assertEqual(session.time_limit, 45)
        finally:
            controller.close()


class TestSelectOption(SessionControllerTestCase):
    """Test cases for the pending selection."""

    async def test_select_option_ignored_while_loading(self):
        self.assertFalse(self.controller.select_option("4"))
        self.assertIsNone(self.controller.session.selected_option)

    async def test_select_option_replaces_previous_selection(self):
        self.controller.start(self.quiz)

        self.assertTrue(self.controller.select_option("3"))
        self.assertTrue(self.controller.select_option("4"))

        session = self.controller.session
        self.assertEqual(session.selected_option, "4")
        self.assertEqual(session.score, 0)
        self.assertEqual(session.remaining_seconds, 30)

    async def test_select_option_ignored_after_completion(self):
        self.controller.start(self.quiz)
        self.answer("4")
        self.answer("Paris")

        self.assertFalse(self.controller.select_option("Paris"))
        self.assertIsNone(self.controller.session.selected_option)


class TestAdvance(SessionControllerTestCase):
    """Test cases for scoring and moving through questions."""

    async def test_correct_answer_advances_to_next_question(self):
        """Answering the first of two questions correctly moves on with score 1."""
        self.controller.start(self.quiz)
        self.controller.select_option("4")

        self.assertTrue(self.controller.advance(AdvanceReason.MANUAL))

        session = self.controller.session
        self.assertEqual(session.score, 1)
        self.assertEqual(session.current_question_index, 1)
        self.assertIsNone(session.selected_option)
        self.assertEqual(session.remaining_seconds, 30)
        self.assertEqual(session.phase, Phase.PRESENTING)
        self.assertTrue(self.controller.has_active_timer)
        self.assertEqual(self.listener.events, [('question', 0), ('question', 1)])

    async def test_wrong_answer_does_not_score(self):
        self.controller.start(self.quiz)
        self.answer("5")
        self.assertEqual(self.controller.session.score, 0)

    async def test_timeout_without_selection_scores_like_wrong_answer(self):
        self.controller.start(self.quiz)
        self.answer(None, AdvanceReason.TIMEOUT)
        timeout_score = self.controller.session.score

        self.controller.start(self.quiz)
        self.answer("3", AdvanceReason.MANUAL)

        self.assertEqual(timeout_score, 0)
        self.assertEqual(self.controller.session.score, timeout_score)

    async def test_advance_on_last_question_completes_and_persists(self):
        self.controller.start(self.quiz)
        self.answer("4")
        self.answer("London")

        session = self.controller.session
        self.assertEqual(session.phase, Phase.COMPLETED)
        self.assertEqual(session.score, 1)
        self.assertFalse(self.controller.has_active_timer)
        self.assertEqual(self.listener.names()[-1], 'completed')

        await self.controller.persist_task
        self.assertEqual(self.reporter.calls, [("user-1", "test_quiz", "Test Quiz", 1, 2)])

    async def test_double_advance_on_last_question_persists_once(self):
        """A second advance in the same processing step is a no-op."""
        self.controller.start(self.quiz)
        self.answer("4")
        self.controller.select_option("Paris")

        self.assertTrue(self.controller.advance(AdvanceReason.MANUAL))
        self.assertFalse(self.controller.advance(AdvanceReason.MANUAL))
        self.assertFalse(self.controller.advance(AdvanceReason.TIMEOUT))

        await self.controller.persist_task
        await AsyncTestHelpers.drain_loop()
        self.assertEqual(len(self.reporter.calls), 1)
        self.assertEqual(self.controller.session.score, 2)
        self.assertEqual(self.listener.names().count('completed'), 1)

    async def test_advance_ignored_while_loading(self):
        self.assertFalse(self.controller.advance())
        self.assertEqual(self.controller.phase, Phase.LOADING)

    async def test_completion_does_not_wait_for_persistence(self):
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_persist(*args):
            started.set()
            await release.wait()

        self.reporter.persist = slow_persist
        self.controller.start(TestFixtures.create_sample_quiz(question_count=1))

        self.assertTrue(self.answer("4"))
        self.assertEqual(self.controller.phase, Phase.COMPLETED)

        await asyncio.wait_for(started.wait(), timeout=5)
        self.assertFalse(self.controller.persist_task.done())
        release.set()
        await self.controller.persist_task

    async def test_score_never_exceeds_questions_answered(self):
        quiz = TestFixtures.create_sample_quiz(question_count=5)
        self.controller.start(quiz)

        for question in quiz.questions:
            self.answer(question.correct_option)
            session = self.controller.session
            if session.phase is Phase.PRESENTING:
                self.assertLessEqual(session.score, session.current_question_index + 1)
                self.assertIsNone(session.selected_option)

        self.assertEqual(self.controller.session.score, quiz.total_questions)
        for _ in range(3):
            self.controller.advance()
        self.assertEqual(self.controller.session.score, quiz.total_questions)
        await self.controller.persist_task
        self.assertEqual(len(self.reporter.calls), 1)


class TestRetry(SessionControllerTestCase):
    """Test cases for restarting a completed session."""

    async def test_retry_resets_completed_session(self):
        self.controller.start(self.quiz)
        self.answer("4")
        self.answer(None, AdvanceReason.TIMEOUT)
        await self.controller.persist_task

        self.assertTrue(self.controller.retry())

        session = self.controller.session
        self.assertEqual(session.phase, Phase.PRESENTING)
        self.assertEqual(session.current_question_index, 0)
        self.assertEqual(session.score, 0)
        self.assertIsNone(session.selected_option)
        self.assertEqual(session.remaining_seconds, 30)
        self.assertEqual(session.quiz_id, "test_quiz")
        self.assertTrue(self.controller.has_active_timer)
        self.assertEqual(self.listener.names()[-2:], ['retry', 'question'])

    async def test_retry_only_valid_when_completed(self):
        self.assertFalse(self.controller.retry())

        self.controller.start(self.quiz)
        self.answer("4")
        self.assertFalse(self.controller.retry())
        self.assertEqual(self.controller.session.current_question_index, 1)

    async def test_retried_session_persists_again(self):
        self.controller.start(self.quiz)
        self.answer("4")
        self.answer("Paris")
        await self.controller.persist_task

        self.controller.retry()
        self.answer("3")
        self.answer("Paris")
        await self.controller.persist_task

        self.assertEqual(
            self.reporter.calls,
            [("user-1", "test_quiz", "Test Quiz", 2, 2), ("user-1", "test_quiz", "Test Quiz", 1, 2)]
        )


class TestTimerDrivenSession(SessionControllerTestCase):
    """Test cases where the countdown drives the session."""

    tick_interval = 0

    async def test_timeout_on_last_question_completes_session(self):
        """With no selection on the last question the countdown completes the quiz."""
        self.controller.start(self.quiz)
        self.controller.select_option("4")
        self.controller.advance(AdvanceReason.MANUAL)

        await asyncio.wait_for(self.listener.completed.wait(), timeout=5)

        session = self.controller.session
        self.assertEqual(session.phase, Phase.COMPLETED)
        self.assertEqual(session.score, 1)
        await self.controller.persist_task
        self.assertEqual(self.reporter.calls, [("user-1", "test_quiz", "Test Quiz", 1, 2)])

    async def test_ticks_update_remaining_seconds(self):
        controller = self.create_controller(settings=QuizSettings(timer_duration=3))
        try:
            controller.start(TestFixtures.create_sample_quiz(question_count=1))
            await asyncio.wait_for(self.listener.completed.wait(), timeout=5)
        finally:
            controller.close()

        self.assertEqual(
            self.listener.events,
            [('question', 0), ('tick', 2), ('tick', 1), ('tick', 0), ('completed', 0)]
        )
        self.assertEqual(controller.session.remaining_seconds, 0)

    async def test_timeouts_walk_through_every_question(self):
        quiz = TestFixtures.create_sample_quiz(question_count=3)
        controller = self.create_controller(settings=QuizSettings(timer_duration=2))
        try:
            controller.start(quiz)
            await asyncio.wait_for(self.listener.completed.wait(), timeout=5)
            await controller.persist_task
        finally:
            controller.close()

        questions = [event[1] for event in self.listener.events if event[0] == 'question']
        self.assertEqual(questions, [0, 1, 2])
        self.assertEqual(self.reporter.calls, [("user-1", "test_quiz", "Test Quiz", 0, 3)])

    async def test_close_stops_countdown(self):
        self.controller.start(self.quiz)
        self.controller.close()
        await AsyncTestHelpers.drain_loop(50)

        self.assertEqual(self.listener.events, [('question', 0)])
        self.assertFalse(self.controller.has_active_timer)
        self.assertEqual(self.controller.session.remaining_seconds, 30)


class TestStaleTimerEvents(SessionControllerTestCase):
    """Test cases for callbacks from superseded timers."""

    async def test_stale_timeout_after_manual_advance_is_ignored(self):
        self.controller.start(self.quiz)
        stale_generation = self.controller._timer_generation
        self.answer("4")

        with self.assertLogs('timed_quiz.quiz_engine', level='WARNING') as logs:
            self.controller._handle_timeout(stale_generation)

        session = self.controller.session
        self.assertEqual(session.current_question_index, 1)
        self.assertEqual(session.score, 1)
        self.assertEqual(session.phase, Phase.PRESENTING)
        self.assertIn("RACE_CONDITION", logs.output[0])

    async def test_stale_tick_does_not_touch_next_question(self):
        self.controller.start(self.quiz)
        stale_generation = self.controller._timer_generation
        self.answer("4")

        with self.assertLogs('timed_quiz.quiz_engine', level='WARNING'):
            self.controller._handle_tick(stale_generation, 3)

        self.assertEqual(self.controller.session.remaining_seconds, 30)
        self.assertNotIn('tick', self.listener.names())

    async def test_timeout_after_completion_is_ignored(self):
        quiz = TestFixtures.create_sample_quiz(question_count=1)
        self.controller.start(quiz)
        generation = self.controller._timer_generation
        self.answer("4")
        await self.controller.persist_task

        with self.assertLogs('timed_quiz.quiz_engine', level='WARNING'):
            self.controller._handle_timeout(generation)

        self.assertEqual(self.controller.phase, Phase.COMPLETED)
        self.assertEqual(len(self.reporter.calls), 1)


class TestPersistenceErrors(SessionControllerTestCase):
    """Test cases for the persistence error channel."""

    async def test_unauthenticated_user_reports_auth_required(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            store = JsonScoreStore(str(Path(temp_dir) / "scores.json"))
            controller = self.create_controller(
                auth_provider=InMemoryAuthProvider(),
                result_reporter=store
            )
            try:
                controller.start(self.quiz)
                controller.select_option("4")
                controller.advance()
                controller.advance()
                await controller.persist_task
            finally:
                controller.close()

            self.assertFalse((Path(temp_dir) / "scores.json").exists())

        self.assertEqual(controller.phase, Phase.COMPLETED)
        self.assertEqual(controller.session.score, 1)
        self.assertEqual(len(self.listener.errors), 1)
        self.assertIsInstance(self.listener.errors[0], AuthRequiredError)

    async def test_persistence_error_is_reported_not_raised(self):
        self.reporter.error = PersistenceError("Disk full")
        self.controller.start(self.quiz)
        self.answer("4")
        self.answer("Paris")

        await self.controller.persist_task

        self.assertEqual(self.controller.phase, Phase.COMPLETED)
        self.assertEqual(self.controller.session.score, 2)
        self.assertEqual(len(self.listener.errors), 1)
        self.assertIs(self.listener.errors[0], self.reporter.error)
        self.assertEqual(len(self.reporter.calls), 1)

    async def test_unexpected_error_is_wrapped(self):
        self.reporter.error = OSError("Connection reset")
        self.controller.start(TestFixtures.create_sample_quiz(question_count=1))
        self.answer("4")

        await self.controller.persist_task

        self.assertEqual(len(self.listener.errors), 1)
        self.assertIsInstance(self.listener.errors[0], PersistenceError)
        self.assertIn("Connection reset", str(self.listener.errors[0]))

    async def test_user_consulted_at_persistence_time(self):
        auth = InMemoryAuthProvider()
        controller = self.create_controller(auth_provider=auth)
        try:
            controller.start(TestFixtures.create_sample_quiz(question_count=1))
            auth.sign_in(42)
            controller.advance()
            await controller.persist_task
        finally:
            controller.close()

        self.assertEqual(self.reporter.calls, [("42", "test_quiz", "Test Quiz", 0, 1)])


class TestCollaboratorFailures(SessionControllerTestCase):
    """Analytics and listener failures never reach the state machine."""

    async def test_analytics_failure_is_ignored(self):
        sink = Mock()
        sink.record_event.side_effect = RuntimeError("analytics down")
        controller = self.create_controller(analytics_sink=sink)
        try:
            controller.start(self.quiz)
            controller.select_option("4")
            self.assertTrue(controller.advance())
        finally:
            controller.close()

        self.assertEqual(controller.session.score, 1)
        self.assertTrue(sink.record_event.called)

    async def test_analytics_events_recorded(self):
        sink = Mock()
        controller = self.create_controller(analytics_sink=sink)
        try:
            controller.start(TestFixtures.create_sample_quiz(question_count=1))
            controller.select_option("4")
            controller.advance()
            controller.retry()
            await controller.persist_task
        finally:
            controller.close()

        names = [call.args[0] for call in sink.record_event.call_args_list]
        self.assertEqual(names, ['quiz_start', 'select_option', 'answer_question', 'quiz_complete', 'quiz_retry'])

    async def test_listener_failure_is_logged(self):
        listener = SessionListener()
        listener.on_question = Mock(side_effect=RuntimeError("render failed"))
        controller = self.create_controller(listener=listener)
        try:
            with self.assertLogs('timed_quiz.session_controller', level='ERROR'):
                session = controller.start(self.quiz)
        finally:
            controller.close()

        self.assertEqual(session.phase, Phase.PRESENTING)


class TestLoadFromQuestionSource(SessionControllerTestCase):
    """Test cases for sessions fed by a question source."""

    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.source = FakeQuestionSource()

    async def test_delivery_starts_session(self):
        self.controller.load("test_quiz", self.source)
        self.assertEqual(self.controller.phase, Phase.LOADING)
        self.assertEqual(self.controller.session.quiz_id, "test_quiz")

        self.source.deliver(self.quiz)

        self.assertEqual(self.controller.phase, Phase.PRESENTING)
        self.assertEqual(self.controller.session.total_questions, 2)

    async def test_delivery_applies_question_settings(self):
        controller = self.create_controller(settings=QuizSettings(question_count=2))
        try:
            controller.load("test_quiz", self.source)
            self.source.deliver(TestFixtures.create_sample_quiz(question_count=5))
            self.assertEqual(controller.session.total_questions, 2)
        finally:
            controller.close()

    async def test_empty_delivery_fails_session(self):
        self.controller.load("empty", self.source)
        self.source.deliver(Quiz(quiz_id="empty", title="Empty"))

        self.assertEqual(self.controller.phase, Phase.FAILED)
        self.assertEqual(self.listener.events, [('failed', 'DataNotFoundError')])

    async def test_source_error_while_loading_fails_session(self):
        self.controller.load("test_quiz", self.source)
        self.source.fail(QuizValidationError("Questions array cannot be empty"))

        self.assertEqual(self.controller.phase, Phase.FAILED)
        self.assertEqual(self.listener.events, [('failed', 'QuizValidationError')])

    async def test_unknown_source_error_is_wrapped(self):
        self.controller.load("test_quiz", self.source)
        self.source.fail(ConnectionError("offline"))

        self.assertEqual(self.controller.phase, Phase.FAILED)
        self.assertEqual(self.listener.events, [('failed', 'DataNotFoundError')])

    async def test_source_error_after_start_is_advisory(self):
        self.controller.load("test_quiz", self.source)
        self.source.deliver(self.quiz)
        self.source.fail(DataNotFoundError("Quiz not found: test_quiz"))

        self.assertEqual(self.controller.phase, Phase.PRESENTING)
        self.assertEqual(self.listener.names()[-1], 'error')

    async def test_redelivery_after_start_is_ignored(self):
        self.controller.load("test_quiz", self.source)
        self.source.deliver(self.quiz)
        self.answer("4")

        self.source.deliver(self.quiz)

        self.assertEqual(self.controller.session.current_question_index, 1)
        self.assertEqual(self.controller.session.score, 1)

    async def test_loading_another_quiz_unsubscribes(self):
        self.controller.load("test_quiz", self.source)
        self.source.deliver(self.quiz)

        self.controller.load("other_quiz", self.source)

        self.assertEqual(self.source.unsubscribed, ["test_quiz"])
        self.assertEqual(self.controller.phase, Phase.LOADING)
        self.assertFalse(self.controller.has_active_timer)

    async def test_close_unsubscribes(self):
        self.controller.load("test_quiz", self.source)
        self.controller.close()
        self.controller.close()
        self.assertEqual(self.source.unsubscribed, ["test_quiz"])

    async def test_load_from_data_manager(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            TestFixtures.create_temp_quiz_files(temp_dir)
            data_manager = DataManager(temp_dir)
            data_manager.load_quiz_files()

            self.controller.load("valid_quiz", data_manager)
            self.assertEqual(self.controller.phase, Phase.LOADING)
            await AsyncTestHelpers.drain_loop()

            self.assertEqual(self.controller.phase, Phase.PRESENTING)
            self.assertEqual(self.controller.session.quiz.title, "Capitals and Sums")

            self.controller.close()
            self.assertEqual(data_manager.get_subscription_count(), 0)

    async def test_load_missing_quiz_from_data_manager(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            TestFixtures.create_temp_quiz_files(temp_dir)
            data_manager = DataManager(temp_dir)
            data_manager.load_quiz_files()

            self.controller.load("does_not_exist", data_manager)
            await AsyncTestHelpers.drain_loop()

        self.assertEqual(self.controller.phase, Phase.FAILED)
        self.assertEqual(self.listener.events, [('failed', 'DataNotFoundError')])


class TestProgress(SessionControllerTestCase):

    async def test_get_progress(self):
        self.controller.start(self.quiz)
        self.controller.select_option("4")

        progress = self.controller.get_progress()

        self.assertEqual(progress, {
            'quiz_id': "test_quiz",
            'quiz_title': "Test Quiz",
            'current_question': 1,
            'total_questions': 2,
            'score': 0,
            'remaining_seconds': 30,
            'selected_option': "4",
            'phase': "presenting"
        })

    async def test_get_progress_before_start(self):
        progress = self.controller.get_progress()
        self.assertIsNone(progress['quiz_title'])
        self.assertEqual(progress['total_questions'], 0)
        self.assertEqual(progress['phase'], "loading")


if __name__ == '__main__':
    unittest.main()
