"""
JSON file backed store for final quiz scores.
"""
import json
import logging
import os
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from .errors import AuthRequiredError, PersistenceError
from .models import ScoreRecord


class JsonScoreStore:
    """
    Persists one score record per (user, quiz) pair, last write wins.

    Layout of the scores file:
    {
        "scores": {
            "<user_id>": {
                "<quiz_id>": {
                    "score": int,
                    "totalQuestions": int,
                    "quizTitle": str,
                    "timestamp": str
                }
            }
        }
    }
    """

    UNKNOWN_TITLE = "Unknown Quiz"

    def __init__(self, scores_file: str = "./scores.json"):
        """
        Initialize the store.

        Args:
            scores_file: Path of the JSON file holding all score records
        """
        self.scores_file = Path(scores_file)
        self.logger = logging.getLogger(__name__)

    async def persist(
        self,
        user_id: Optional[str],
        quiz_id: str,
        quiz_title: str,
        final_score: int,
        total_questions: int
    ) -> ScoreRecord:
        """
        Write the final score of a completed quiz, replacing any earlier record.

        Args:
            user_id: Authenticated user, or None when nobody is signed in
            quiz_id: Identifier of the quiz
            quiz_title: Display title of the quiz
            final_score: Number of correctly answered questions
            total_questions: Number of questions in the quiz

        Returns:
            The ScoreRecord that was written

        Raises:
            AuthRequiredError: If no user is authenticated
            PersistenceError: If the record could not be written
        """
        if user_id is None:
            self.logger.warning(
                f"Refusing to persist score for quiz {quiz_id}: no authenticated user",
                extra={
                    'event_type': 'score_persist_auth_required',
                    'quiz_id': quiz_id,
                    'timestamp': time.time()
                }
            )
            raise AuthRequiredError("User not authenticated")

        record = ScoreRecord(
            user_id=str(user_id),
            quiz_id=quiz_id,
            quiz_title=quiz_title or self.UNKNOWN_TITLE,
            final_score=final_score,
            total_questions=total_questions,
            completed_at=datetime.now(timezone.utc).isoformat()
        )

        data = self._read_all()
        user_scores = data["scores"].setdefault(record.user_id, {})
        user_scores[record.quiz_id] = {
            "score": record.final_score,
            "totalQuestions": record.total_questions,
            "quizTitle": record.quiz_title,
            "timestamp": record.completed_at,
        }
        self._write_all(data)

        self.logger.info(
            f"Score saved for user {record.user_id}: quiz={record.quiz_id}, "
            f"score={record.final_score}/{record.total_questions}",
            extra={
                'event_type': 'score_persisted',
                'user_id': record.user_id,
                'quiz_id': record.quiz_id,
                'final_score': record.final_score,
                'total_questions': record.total_questions,
                'timestamp': time.time()
            }
        )
        return record

    def get_user_scores(self, user_id: str) -> List[ScoreRecord]:
        """
        Get all score records for a user.

        Args:
            user_id: User whose history is requested

        Returns:
            List of ScoreRecord objects, empty if the user has none

        Raises:
            PersistenceError: If the scores file cannot be read
        """
        user_scores = self._read_all()["scores"].get(str(user_id), {})
        return [
            self._to_record(str(user_id), quiz_id, entry)
            for quiz_id, entry in user_scores.items()
        ]

    def get_score(self, user_id: str, quiz_id: str) -> Optional[ScoreRecord]:
        """Get the record for one (user, quiz) pair, or None."""
        entry = self._read_all()["scores"].get(str(user_id), {}).get(quiz_id)
        if entry is None:
            return None
        return self._to_record(str(user_id), quiz_id, entry)

    def _to_record(self, user_id: str, quiz_id: str, entry: Dict) -> ScoreRecord:
        return ScoreRecord(
            user_id=user_id,
            quiz_id=quiz_id,
            quiz_title=entry.get("quizTitle") or f"Quiz {quiz_id}",
            final_score=entry.get("score", 0),
            total_questions=entry.get("totalQuestions", 0),
            completed_at=entry.get("timestamp", "")
        )

    def _read_all(self) -> Dict:
        if not self.scores_file.exists():
            return {"scores": {}}

        try:
            with open(self.scores_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            self.logger.error(f"Invalid JSON in scores file {self.scores_file}: {e}")
            raise PersistenceError(f"Scores file is corrupted: {e}") from e
        except OSError as e:
            self.logger.error(f"Failed to read scores file {self.scores_file}: {e}")
            raise PersistenceError(f"Failed to read scores: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("scores"), dict):
            raise PersistenceError(f"Unexpected structure in scores file {self.scores_file}")
        return data

    def _write_all(self, data: Dict) -> None:
        temp_path = self.scores_file.with_suffix(self.scores_file.suffix + ".tmp")
        try:
            self.scores_file.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(temp_path, self.scores_file)
        except OSError as e:
            self.logger.error(f"Failed to write scores file {self.scores_file}: {e}")
            raise PersistenceError(f"Failed to save score: {e}") from e
