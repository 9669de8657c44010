"""
Best-effort persistence of quiz progress, one slot per category.

Nothing in this module raises. Any storage or parse failure is logged and
reported as "no saved progress" so the participant simply starts over.
"""
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from .models import QuizSession
from .storage import ScopedStorage

STORAGE_KEY_PREFIX = "quiz_progress_"
DEFAULT_MAX_AGE = timedelta(hours=24)
SAVED_AT_FIELD = "savedAt"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def get_quiz_storage_key(category_id: str) -> str:
    """Storage key holding a category's progress."""
    return f"{STORAGE_KEY_PREFIX}{category_id}"


class ProgressStore:
    """Saves, loads and clears quiz sessions in a scoped storage."""

    def __init__(
        self,
        storage: Optional[ScopedStorage],
        max_age: timedelta = DEFAULT_MAX_AGE,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            storage: Scoped storage, or None when none is available here
            max_age: Age after which saved progress is discarded
            clock: Returns the current time (timezone aware)
        """
        self.storage = storage
        self.max_age = max_age
        self.clock = clock
        self.logger = logging.getLogger(__name__)

    @property
    def available(self) -> bool:
        return self.storage is not None

    def save(self, category_id: str, session: QuizSession) -> bool:
        """
        Save a session, overwriting any earlier progress for the category.

        Returns:
            True if the session was written, False otherwise
        """
        if self.storage is None:
            return False

        try:
            data = session.to_dict()
            data[SAVED_AT_FIELD] = self.clock().isoformat()
            self.storage.set(get_quiz_storage_key(category_id), json.dumps(data, ensure_ascii=False))
            return True
        except (OSError, TypeError, ValueError) as e:
            self.logger.warning(f"Failed to save quiz progress for {category_id}: {e}")
            return False

    def load(self, category_id: str) -> Optional[QuizSession]:
        """
        Load saved progress for a category.

        Progress older than ``max_age`` is removed and reported as absent.

        Returns:
            The saved session, or None if there is none usable
        """
        if self.storage is None:
            return None

        try:
            stored = self.storage.get(get_quiz_storage_key(category_id))
            if not stored:
                return None

            data = json.loads(stored)
            if not isinstance(data, dict):
                raise ValueError("saved progress is not a JSON object")

            saved_at = data.pop(SAVED_AT_FIELD, None)
            if saved_at is not None:
                age = self.clock() - datetime.fromisoformat(saved_at)
                if age > self.max_age:
                    self.logger.info(f"Discarding expired quiz progress for {category_id}")
                    self.clear(category_id)
                    return None

            return QuizSession.from_dict(data)
        except (OSError, KeyError, TypeError, ValueError) as e:
            self.logger.warning(f"Failed to load quiz progress for {category_id}: {e}")
            return None

    def clear(self, category_id: str) -> None:
        """Remove saved progress for a category. Missing progress is not an error."""
        if self.storage is None:
            return

        try:
            self.storage.remove(get_quiz_storage_key(category_id))
        except (OSError, ValueError) as e:
            self.logger.warning(f"Failed to clear quiz progress for {category_id}: {e}")
