"""
Configuration manager for quiz settings and storage locations.
"""
import logging
from typing import Optional, Dict, Any
from pathlib import Path

from .models import QuizSettings, DEFAULT_TIME_LIMIT


class ConfigManager:
    """Manages quiz configuration settings with validation."""

    DEFAULT_QUESTION_COUNT = None  # Use all questions by default
    DEFAULT_RANDOM_ORDER = False
    DEFAULT_TIMER_DURATION = DEFAULT_TIME_LIMIT
    DEFAULT_QUIZ_DIRECTORY = "./quizzes/"
    DEFAULT_SCORES_FILE = "./scores.json"

    # Validation limits
    MIN_TIMER_DURATION = 5
    MAX_TIMER_DURATION = 300  # 5 minutes
    MIN_QUESTION_COUNT = 1
    MAX_QUESTION_COUNT = 100

    SYSTEM_DIRECTORIES = ['/bin', '/usr', '/etc', '/sys', '/proc', 'C:\\Windows', 'C:\\Program Files']

    def __init__(self):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self._global_settings = QuizSettings()
        self._quiz_directory = self.DEFAULT_QUIZ_DIRECTORY
        self._scores_file = self.DEFAULT_SCORES_FILE

    def get_quiz_settings(self) -> QuizSettings:
        """
        Get a copy of the current quiz settings.

        Returns:
            QuizSettings object with current configuration
        """
        return QuizSettings(
            question_count=self._global_settings.question_count,
            random_order=self._global_settings.random_order,
            timer_duration=self._global_settings.timer_duration
        )

    def _failure(self, error_msg: str, user_message: str) -> Dict[str, Any]:
        self.logger.error(error_msg)
        return {
            'success': False,
            'error': error_msg,
            'user_message': user_message
        }

    def set_question_count(self, count: Optional[int]) -> Dict[str, Any]:
        """
        Set the number of questions for quizzes with detailed error reporting.

        Args:
            count: Number of questions, or None to use all questions

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if count is None:
            self._global_settings.question_count = None
            self.logger.info("Question count set to use all available questions")
            return {
                'success': True,
                'message': "Question count set to use all available questions",
                'user_message': "✅ Will use all available questions from each quiz"
            }

        if not isinstance(count, int) or isinstance(count, bool):
            return self._failure(
                f"Question count must be an integer, got {type(count).__name__}",
                f"❌ Invalid input: Expected a number, got {type(count).__name__}"
            )

        if count < self.MIN_QUESTION_COUNT:
            return self._failure(
                f"Question count must be at least {self.MIN_QUESTION_COUNT}",
                f"❌ Too few questions: Minimum is {self.MIN_QUESTION_COUNT}"
            )

        if count > self.MAX_QUESTION_COUNT:
            return self._failure(
                f"Question count cannot exceed {self.MAX_QUESTION_COUNT}",
                f"❌ Too many questions: Maximum is {self.MAX_QUESTION_COUNT}"
            )

        self._global_settings.question_count = count
        self.logger.info(f"Question count set to {count}")
        return {
            'success': True,
            'message': f"Question count set to {count}",
            'user_message': f"✅ Question count set to {count}"
        }

    def get_question_count(self) -> Optional[int]:
        return self._global_settings.question_count

    def set_random_order(self, random_order: bool) -> Dict[str, Any]:
        """
        Set whether questions should be presented in random order.

        Args:
            random_order: True for random order, False for sequential

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(random_order, bool):
            return self._failure(
                f"Random order must be a boolean, got {type(random_order).__name__}",
                f"❌ Invalid input: Expected true/false, got {type(random_order).__name__}"
            )

        self._global_settings.random_order = random_order
        order_type = "random" if random_order else "sequential"
        self.logger.info(f"Question order set to {order_type}")

        return {
            'success': True,
            'message': f"Question order set to {order_type}",
            'user_message': f"✅ Questions will be presented in {order_type} order"
        }

    def get_random_order(self) -> bool:
        return self._global_settings.random_order

    def toggle_random_order(self) -> Dict[str, Any]:
        """
        Toggle the random order setting.

        Returns:
            Dictionary with success status, new value, and user-friendly message
        """
        previous_value = self._global_settings.random_order
        result = self.set_random_order(not previous_value)
        if result['success']:
            result['new_value'] = not previous_value
            result['previous_value'] = previous_value
        return result

    def set_timer_duration(self, duration: int) -> Dict[str, Any]:
        """
        Set the per-question time limit.

        Args:
            duration: Timer duration in seconds

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(duration, int) or isinstance(duration, bool):
            return self._failure(
                f"Timer duration must be an integer, got {type(duration).__name__}",
                f"❌ Invalid input: Expected a number, got {type(duration).__name__}"
            )

        if duration < self.MIN_TIMER_DURATION:
            return self._failure(
                f"Timer duration must be at least {self.MIN_TIMER_DURATION} seconds",
                f"❌ Timer too short: Minimum is {self.MIN_TIMER_DURATION} seconds"
            )

        if duration > self.MAX_TIMER_DURATION:
            return self._failure(
                f"Timer duration cannot exceed {self.MAX_TIMER_DURATION} seconds",
                f"❌ Timer too long: Maximum is {self.MAX_TIMER_DURATION} seconds "
                f"({self.MAX_TIMER_DURATION // 60} minutes)"
            )

        self._global_settings.timer_duration = duration
        self.logger.info(f"Timer duration set to {duration} seconds")
        return {
            'success': True,
            'message': f"Timer duration set to {duration} seconds",
            'user_message': f"✅ Timer set to {duration} seconds"
        }

    def get_timer_duration(self) -> int:
        return self._global_settings.timer_duration

    def _validate_path(self, path: Any, label: str) -> Dict[str, Any]:
        if not isinstance(path, str):
            return self._failure(
                f"{label} must be a string, got {type(path).__name__}",
                f"❌ Invalid input: Expected a path string, got {type(path).__name__}"
            )

        if not path.strip():
            return self._failure(
                f"{label} cannot be empty",
                f"❌ {label} cannot be empty"
            )

        try:
            normalized_path = str(Path(path).resolve())
        except (OSError, ValueError) as e:
            return self._failure(
                f"Invalid {label.lower()} format: {e}",
                f"❌ Invalid path format: {path}"
            )

        if any(normalized_path.startswith(sys_dir) for sys_dir in self.SYSTEM_DIRECTORIES):
            return self._failure(
                f"Cannot use system directory: {normalized_path}",
                f"❌ Cannot use system directory: {path}"
            )

        return {'success': True, 'path': normalized_path}

    def set_quiz_directory(self, directory: str) -> Dict[str, Any]:
        """
        Set the directory path for quiz files.

        Args:
            directory: Path to quiz files directory

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        result = self._validate_path(directory, "Quiz directory")
        if not result['success']:
            return result

        self._quiz_directory = result['path']
        self.logger.info(f"Quiz directory set to {self._quiz_directory}")
        return {
            'success': True,
            'message': f"Quiz directory set to {self._quiz_directory}",
            'user_message': f"✅ Quiz directory set to {self._quiz_directory}"
        }

    def get_quiz_directory(self) -> str:
        return self._quiz_directory

    def set_scores_file(self, scores_file: str) -> Dict[str, Any]:
        """
        Set the JSON file that stores final scores.

        Args:
            scores_file: Path to the scores file

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        result = self._validate_path(scores_file, "Scores file")
        if not result['success']:
            return result

        self._scores_file = result['path']
        self.logger.info(f"Scores file set to {self._scores_file}")
        return {
            'success': True,
            'message': f"Scores file set to {self._scores_file}",
            'user_message': f"✅ Scores file set to {self._scores_file}"
        }

    def get_scores_file(self) -> str:
        return self._scores_file

    def reset_to_defaults(self) -> None:
        """Reset all settings to their default values."""
        self._global_settings = QuizSettings(
            question_count=self.DEFAULT_QUESTION_COUNT,
            random_order=self.DEFAULT_RANDOM_ORDER,
            timer_duration=self.DEFAULT_TIMER_DURATION
        )
        self._quiz_directory = self.DEFAULT_QUIZ_DIRECTORY
        self._scores_file = self.DEFAULT_SCORES_FILE
        self.logger.info("All settings reset to default values")

    def validate_settings(self) -> Dict[str, Any]:
        """
        Validate current settings and return validation results.

        Returns:
            Dictionary with validation results and any issues found
        """
        validation_result = {
            "valid": True,
            "issues": []
        }

        question_count = self._global_settings.question_count
        if question_count is not None:
            if (not isinstance(question_count, int) or
                    question_count < self.MIN_QUESTION_COUNT or
                    question_count > self.MAX_QUESTION_COUNT):
                validation_result["valid"] = False
                validation_result["issues"].append(f"Invalid question count: {question_count}")

        if not isinstance(self._global_settings.random_order, bool):
            validation_result["valid"] = False
            validation_result["issues"].append(
                f"Invalid random order setting: {self._global_settings.random_order}"
            )

        timer_duration = self._global_settings.timer_duration
        if (not isinstance(timer_duration, int) or
                timer_duration < self.MIN_TIMER_DURATION or
                timer_duration > self.MAX_TIMER_DURATION):
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid timer duration: {timer_duration}")

        if not isinstance(self._quiz_directory, str) or not self._quiz_directory.strip():
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid quiz directory: {self._quiz_directory}")

        return validation_result

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        question_count_str = (
            str(self._global_settings.question_count)
            if self._global_settings.question_count is not None
            else "all available"
        )

        order_str = "random" if self._global_settings.random_order else "sequential"

        return (
            f"Quiz Settings:\n"
            f"• Questions: {question_count_str}\n"
            f"• Order: {order_str}\n"
            f"• Timer: {self._global_settings.timer_duration} seconds\n"
            f"• Quiz Directory: {self._quiz_directory}\n"
            f"• Scores File: {self._scores_file}"
        )
