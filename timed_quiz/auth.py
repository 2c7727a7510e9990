"""
Authentication provider consulted when a finished quiz is persisted.
"""
import logging
from typing import Optional


class InMemoryAuthProvider:
    """Holds the identity of the user currently taking a quiz."""

    def __init__(self, user_id: Optional[str] = None):
        self.logger = logging.getLogger(__name__)
        self._user_id = str(user_id) if user_id is not None else None

    def current_user_id(self) -> Optional[str]:
        """Return the signed-in user id, or None when nobody is signed in."""
        return self._user_id

    def sign_in(self, user_id) -> None:
        self._user_id = str(user_id)
        self.logger.info(f"User {self._user_id} signed in")

    def sign_out(self) -> None:
        if self._user_id is not None:
            self.logger.info(f"User {self._user_id} signed out")
        self._user_id = None
