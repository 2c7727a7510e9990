"""
Data manager for JSON quiz files: loading, validation and subscriptions.
"""
import asyncio
import json
import os
import logging
from typing import Any, Callable, Dict, List, Optional
from pathlib import Path

from .errors import DataNotFoundError, QuizValidationError
from .models import Question, Quiz


class _Subscription:
    """A registered interest in one quiz."""

    def __init__(self, quiz_id: str, on_data: Callable[[Quiz], Any], on_error: Callable[[Exception], Any]):
        self.quiz_id = quiz_id
        self.on_data = on_data
        self.on_error = on_error
        self.active = True


class DataManager:
    """Manages loading and validation of JSON quiz files."""

    MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB limit
    MAX_OPTIONS = 20  # Four rows of five option buttons

    def __init__(self, quiz_directory: str = "./quizzes/"):
        """
        Initialize DataManager with quiz directory path.

        Args:
            quiz_directory: Path to directory containing JSON quiz files
        """
        self.quiz_directory = Path(quiz_directory)
        self.loaded_quizzes: Dict[str, Quiz] = {}
        self.invalid_quizzes: Dict[str, str] = {}
        self.logger = logging.getLogger(__name__)
        self.load_errors: List[str] = []  # Track loading errors for user feedback
        self.fallback_quiz_created = False  # Track if we created a fallback quiz
        self._subscriptions: List[_Subscription] = []

    def load_quiz_files(self) -> Dict[str, Quiz]:
        """
        Load all JSON files from the quiz directory with comprehensive error handling.

        Returns:
            Dictionary mapping quiz ids to Quiz objects
        """
        self.loaded_quizzes.clear()
        self.invalid_quizzes.clear()
        self.load_errors.clear()
        self.fallback_quiz_created = False

        directory_result = self._ensure_quiz_directory()
        if not directory_result['success']:
            self.load_errors.append(directory_result['error'])
            return self._create_fallback_quiz()

        scan_result = self._scan_quiz_files()
        if not scan_result['success']:
            self.load_errors.append(scan_result['error'])
            return self._create_fallback_quiz()

        json_files = scan_result['files']

        # If no files found, create sample quiz and provide guidance
        if not json_files:
            self.logger.warning(f"No JSON files found in {self.quiz_directory}")
            self.load_errors.append(f"No quiz files found in {self.quiz_directory}")
            return self._create_sample_quiz()

        successful_loads = 0
        for json_file in json_files:
            load_result = self._load_quiz_file_safely(json_file)
            if load_result['success']:
                successful_loads += 1
            else:
                self.invalid_quizzes[json_file.stem] = load_result['error']
                self.load_errors.append(f"{json_file.name}: {load_result['error']}")

        if successful_loads == 0:
            self.logger.error("No quiz files could be loaded successfully")
            self.load_errors.append("All quiz files failed to load")
            return self._create_fallback_quiz()

        self.logger.info(f"Successfully loaded {successful_loads} quiz files")
        if self.load_errors:
            self.logger.warning(f"Encountered {len(self.load_errors)} loading errors")

        return self.loaded_quizzes

    def validate_quiz_structure(self, data: dict) -> bool:
        """
        Validate that JSON data has the correct quiz structure.

        Expected structure:
        {
            "title": str,  # Optional, defaults to the file name
            "questions": [
                {
                    "question": str,
                    "options": [str, ...],  # 1-20 non-blank strings
                    "correct": str  # Must be one of options
                }
            ]
        }

        Args:
            data: Parsed JSON data to validate

        Returns:
            True if structure is valid, False otherwise
        """
        problem = self._find_structure_problem(data)
        if problem is not None:
            self.logger.error(problem)
            return False
        return True

    def _find_structure_problem(self, data: Any) -> Optional[str]:
        if not isinstance(data, dict):
            return "Quiz data must be a JSON object"

        if "title" in data and not isinstance(data["title"], str):
            return "'title' value must be a string"

        if "questions" not in data:
            return "Quiz data must contain a 'questions' key"

        questions = data["questions"]
        if not isinstance(questions, list):
            return "'questions' value must be an array"

        if not questions:
            return "Questions array cannot be empty"

        for i, question_data in enumerate(questions):
            if not isinstance(question_data, dict):
                return f"Question {i} must be an object"

            for key in ("question", "options", "correct"):
                if key not in question_data:
                    return f"Question {i} missing '{key}' field"

            if not isinstance(question_data["question"], str):
                return f"Question {i} 'question' field must be a string"

            options = question_data["options"]
            if not isinstance(options, list) or not options:
                return f"Question {i} 'options' field must be a non-empty array"

            if not all(isinstance(option, str) for option in options):
                return f"Question {i} options must be strings"

            if len(options) > self.MAX_OPTIONS:
                return f"Question {i} has {len(options)} options, maximum is {self.MAX_OPTIONS}"

            if any(not option.strip() for option in options):
                return f"Question {i} options cannot be empty"

            if not isinstance(question_data["correct"], str):
                return f"Question {i} 'correct' field must be a string"

            if question_data["correct"] not in options:
                return f"Question {i} correct answer is not one of its options"

        return None

    def parse_quiz(self, quiz_id: str, quiz_data: dict) -> Quiz:
        """
        Validate and parse quiz data into a Quiz object.

        Args:
            quiz_id: Identifier to give the quiz
            quiz_data: Parsed JSON data

        Returns:
            Quiz with immutable questions

        Raises:
            QuizValidationError: If the data does not have the expected structure
        """
        problem = self._find_structure_problem(quiz_data)
        if problem is not None:
            raise QuizValidationError(problem)

        questions = tuple(
            Question(
                prompt=question_data["question"],
                options=tuple(question_data["options"]),
                correct_option=question_data["correct"]
            )
            for question_data in quiz_data["questions"]
        )
        return Quiz(
            quiz_id=quiz_id,
            title=quiz_data.get("title") or quiz_id,
            questions=questions
        )

    def subscribe(
        self,
        quiz_id: str,
        on_data: Callable[[Quiz], Any],
        on_error: Callable[[Exception], Any]
    ) -> Callable[[], None]:
        """
        Subscribe to a quiz by id.

        The quiz (or an error) is delivered on the next event loop iteration,
        and again after every reload() while the subscription is active.

        Args:
            quiz_id: Quiz identifier (file name without extension)
            on_data: Called with the Quiz when it is available
            on_error: Called with DataNotFoundError or QuizValidationError

        Returns:
            Callable that cancels the subscription
        """
        subscription = _Subscription(quiz_id, on_data, on_error)
        self._subscriptions.append(subscription)
        self._schedule_delivery(subscription)

        def unsubscribe() -> None:
            if not subscription.active:
                return
            subscription.active = False
            self._subscriptions.remove(subscription)
            self.logger.debug(f"Unsubscribed from quiz '{quiz_id}'")

        return unsubscribe

    def reload(self) -> Dict[str, Quiz]:
        """Reload quiz files and redeliver to active subscribers."""
        loaded = self.load_quiz_files()
        for subscription in list(self._subscriptions):
            self._schedule_delivery(subscription)
        return loaded

    def get_subscription_count(self) -> int:
        return len(self._subscriptions)

    def _schedule_delivery(self, subscription: _Subscription) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._deliver(subscription)
            return
        loop.call_soon(self._deliver, subscription)

    def _deliver(self, subscription: _Subscription) -> None:
        if not subscription.active:
            return

        quiz = self.loaded_quizzes.get(subscription.quiz_id)
        if quiz is not None:
            subscription.on_data(quiz)
            return

        if subscription.quiz_id in self.invalid_quizzes:
            error = QuizValidationError(
                f"Quiz '{subscription.quiz_id}' is invalid: {self.invalid_quizzes[subscription.quiz_id]}"
            )
        else:
            error = DataNotFoundError(f"Quiz not found: {subscription.quiz_id}")
        self.logger.error(str(error))
        subscription.on_error(error)

    def get_available_quizzes(self) -> List[str]:
        """
        Get list of available quiz ids.

        Returns:
            List of quiz ids (file names without extensions)
        """
        return list(self.loaded_quizzes.keys())

    def get_quiz(self, quiz_id: str) -> Optional[Quiz]:
        """Retrieve a loaded quiz, or None if not found."""
        return self.loaded_quizzes.get(quiz_id)

    def quiz_exists(self, quiz_id: str) -> bool:
        return quiz_id in self.loaded_quizzes

    def get_question_count(self, quiz_id: str) -> int:
        """
        Get the number of questions in a specific quiz.

        Returns:
            Number of questions in the quiz, or 0 if quiz not found
        """
        quiz = self.get_quiz(quiz_id)
        return quiz.total_questions if quiz else 0

    def _ensure_quiz_directory(self) -> Dict[str, Any]:
        """
        Ensure quiz directory exists with comprehensive error handling.

        Returns:
            Dictionary with success status and error message if applicable
        """
        try:
            if not self.quiz_directory.exists():
                self.quiz_directory.mkdir(parents=True, exist_ok=True)
                self.logger.info(f"Created quiz directory: {self.quiz_directory}")

            if not os.access(self.quiz_directory, os.R_OK):
                return {
                    'success': False,
                    'error': f"Permission denied: Cannot read from {self.quiz_directory}"
                }

            return {'success': True}

        except PermissionError:
            return {
                'success': False,
                'error': f"Permission denied: Cannot access {self.quiz_directory}"
            }
        except OSError as e:
            return {
                'success': False,
                'error': f"System error accessing {self.quiz_directory}: {e}"
            }

    def _scan_quiz_files(self) -> Dict[str, Any]:
        """
        Scan quiz directory for JSON files with error handling.

        Returns:
            Dictionary with success status, files list, and error message if applicable
        """
        try:
            json_files = sorted(self.quiz_directory.glob("*.json"))
            return {
                'success': True,
                'files': json_files
            }
        except OSError as e:
            return {
                'success': False,
                'error': f"System error scanning {self.quiz_directory}: {e}",
                'files': []
            }

    def _load_quiz_file_safely(self, json_file: Path) -> Dict[str, Any]:
        """
        Load a single quiz file with comprehensive error handling.

        Args:
            json_file: Path to the JSON file to load

        Returns:
            Dictionary with success status and error message if applicable
        """
        try:
            file_size = json_file.stat().st_size
            if file_size > self.MAX_FILE_SIZE:
                return {
                    'success': False,
                    'error': f"File too large ({file_size / 1024 / 1024:.1f}MB). "
                             f"Maximum size is {self.MAX_FILE_SIZE / 1024 / 1024}MB"
                }

            with open(json_file, 'r', encoding='utf-8') as f:
                quiz_data = json.load(f)

            quiz = self.parse_quiz(json_file.stem, quiz_data)
            self.loaded_quizzes[quiz.quiz_id] = quiz
            self.logger.info(f"Loaded quiz '{quiz.quiz_id}' with {quiz.total_questions} questions")

            return {'success': True}

        except json.JSONDecodeError as e:
            self.logger.error(f"Invalid JSON in {json_file}: {e}")
            return {
                'success': False,
                'error': f"Invalid JSON: {e}"
            }
        except QuizValidationError as e:
            self.logger.error(f"Invalid quiz structure in {json_file}: {e}")
            return {
                'success': False,
                'error': str(e)
            }
        except PermissionError:
            return {
                'success': False,
                'error': "Permission denied"
            }
        except OSError as e:
            return {
                'success': False,
                'error': f"System error: {e}"
            }

    def _create_sample_quiz(self) -> Dict[str, Quiz]:
        """
        Create a sample quiz file when no quiz files are found.

        Returns:
            Dictionary with the sample quiz loaded
        """
        sample_quiz_data = {
            "title": "Sample Quiz",
            "questions": [
                {
                    "question": "What is the capital of France?",
                    "options": ["London", "Berlin", "Paris", "Madrid"],
                    "correct": "Paris"
                },
                {
                    "question": "What is 2 + 2?",
                    "options": ["3", "4", "5", "22"],
                    "correct": "4"
                },
                {
                    "question": "What programming language is this bot written in?",
                    "options": ["JavaScript", "Python", "Go", "Rust"],
                    "correct": "Python"
                }
            ]
        }

        try:
            sample_file_path = self.quiz_directory / "sample_quiz.json"

            # Only create if it doesn't exist
            if not sample_file_path.exists():
                with open(sample_file_path, 'w', encoding='utf-8') as f:
                    json.dump(sample_quiz_data, f, indent=2, ensure_ascii=False)

                self.logger.info(f"Created sample quiz file: {sample_file_path}")
        except OSError as e:
            self.logger.error(f"Failed to write sample quiz: {e}")
            self.load_errors.append(f"Failed to create sample quiz: {e}")

        quiz = self.parse_quiz("sample_quiz", sample_quiz_data)
        self.loaded_quizzes[quiz.quiz_id] = quiz
        self.logger.info(f"Loaded sample quiz with {quiz.total_questions} questions")

        return self.loaded_quizzes

    def _create_fallback_quiz(self) -> Dict[str, Quiz]:
        """
        Create a minimal fallback quiz in memory when all file operations fail.

        Returns:
            Dictionary with the fallback quiz loaded
        """
        fallback_question = Question(
            prompt="This is a fallback question. What should you do when quiz files can't be loaded?",
            options=(
                "Check the quiz directory and file permissions",
                "Restart the computer",
                "Nothing"
            ),
            correct_option="Check the quiz directory and file permissions"
        )

        self.loaded_quizzes["fallback_quiz"] = Quiz(
            quiz_id="fallback_quiz",
            title="Fallback Quiz",
            questions=(fallback_question,)
        )
        self.fallback_quiz_created = True
        self.logger.warning("Created fallback quiz due to file loading failures")

        return self.loaded_quizzes

    def get_load_errors(self) -> List[str]:
        """
        Get list of errors encountered during the last load operation.

        Returns:
            List of error messages
        """
        return self.load_errors.copy()

    def has_load_errors(self) -> bool:
        return len(self.load_errors) > 0

    def is_fallback_quiz_active(self) -> bool:
        return self.fallback_quiz_created

    def get_loading_summary(self) -> Dict[str, Any]:
        """
        Get a comprehensive summary of the loading operation.

        Returns:
            Dictionary with loading statistics and status
        """
        return {
            'total_quizzes': len(self.loaded_quizzes),
            'has_errors': self.has_load_errors(),
            'error_count': len(self.load_errors),
            'errors': self.get_load_errors(),
            'fallback_active': self.is_fallback_quiz_active(),
            'quiz_directory': str(self.quiz_directory),
            'available_quizzes': self.get_available_quizzes()
        }
