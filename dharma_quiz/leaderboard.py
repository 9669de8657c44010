"""
Per-category leaderboard of finished quiz attempts.
"""
import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

from .models import QuizAttempt

TIMEFRAMES = ("daily", "weekly", "monthly", "all-time")
DEFAULT_LIMIT = 10


class Leaderboard:
    """
    Keeps finished attempts and ranks them by score.

    Attempts are written to a JSON file when a path is given, otherwise
    they only live in memory. Write failures are logged, never raised.
    """

    def __init__(self, storage_path: Optional[str] = None):
        self.storage_path = Path(storage_path) if storage_path else None
        self.logger = logging.getLogger(__name__)
        self._attempts: List[QuizAttempt] = self._load()

    def _load(self) -> List[QuizAttempt]:
        if self.storage_path is None or not self.storage_path.exists():
            return []
        try:
            with open(self.storage_path, 'r', encoding='utf-8') as f:
                rows = json.load(f)
            if not isinstance(rows, list):
                raise ValueError("leaderboard file must contain a JSON array")
            return [QuizAttempt.from_dict(row) for row in rows]
        except (OSError, KeyError, TypeError, ValueError) as e:
            self.logger.error(f"Failed to load leaderboard from {self.storage_path}: {e}")
            return []

    def _save(self) -> bool:
        if self.storage_path is None:
            return True
        try:
            self.storage_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.storage_path, 'w', encoding='utf-8') as f:
                json.dump([a.to_dict() for a in self._attempts], f, indent=2, ensure_ascii=False)
            return True
        except OSError as e:
            self.logger.error(f"Failed to save leaderboard to {self.storage_path}: {e}")
            return False

    def record_attempt(self, attempt: QuizAttempt) -> bool:
        """
        Add a finished attempt.

        Returns:
            True if the attempt was persisted
        """
        self._attempts.append(attempt)
        self.logger.info(
            f"Recorded attempt for {attempt.display_name} in '{attempt.category_id}': "
            f"{attempt.score}/{attempt.total}"
        )
        return self._save()

    def get_leaderboard(
        self,
        category_id: str,
        limit: int = DEFAULT_LIMIT,
        timeframe: str = "all-time",
        now: Optional[datetime] = None
    ) -> List[QuizAttempt]:
        """
        Get the top attempts of a category.

        Attempts are ordered by score only; equal scores keep the order in
        which they were recorded.

        Args:
            category_id: Category to rank
            limit: Maximum number of attempts to return
            timeframe: One of "daily", "weekly", "monthly" or "all-time"
            now: Reference time for the timeframe, defaults to the current time

        Raises:
            ValueError: If timeframe is unknown
        """
        if timeframe not in TIMEFRAMES:
            raise ValueError(f"Unknown timeframe: {timeframe}")

        now = now or datetime.now(timezone.utc)
        attempts = [
            a for a in self._attempts
            if a.category_id == category_id and self._in_timeframe(a.completed_at, timeframe, now)
        ]
        attempts.sort(key=lambda a: a.score, reverse=True)
        return attempts[:limit]

    @staticmethod
    def _in_timeframe(completed_at: datetime, timeframe: str, now: datetime) -> bool:
        if timeframe == "all-time":
            return True
        if timeframe == "daily":
            return completed_at.astimezone(timezone.utc).date() == now.astimezone(timezone.utc).date()
        window = timedelta(days=7) if timeframe == "weekly" else timedelta(days=30)
        return now - completed_at <= window
