"""
Question selection and ordering for quiz sessions.
"""
import logging
import random
from typing import List, Optional, Sequence, TypeVar

from .models import Question

T = TypeVar("T")

logger = logging.getLogger(__name__)


def shuffle_questions(items: Sequence[T], rng: Optional[random.Random] = None) -> List[T]:
    """
    Return a uniformly shuffled copy of ``items`` (Fisher-Yates).

    Args:
        items: Sequence to shuffle; it is never modified
        rng: Optional random source, the ``random`` module is used otherwise

    Returns:
        New list holding a permutation of ``items``
    """
    source = rng if rng is not None else random
    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = source.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


class QuizEngine:
    """Core quiz engine that handles question selection and ordering."""

    def __init__(self, rng: Optional[random.Random] = None):
        """
        Initialize the quiz engine.

        Args:
            rng: Optional random source used for every shuffle
        """
        self.rng = rng

    def select_questions(self, questions: List[Question], requested_count: Optional[int] = None) -> List[Question]:
        """
        Shuffle questions and keep the first ``requested_count`` of them.

        Args:
            questions: List of available questions
            requested_count: Number of questions wanted, or None for all

        Returns:
            List of selected and ordered questions

        Raises:
            ValueError: If questions list is empty
        """
        if not questions:
            raise ValueError("Cannot select questions from empty list")

        selected_questions = shuffle_questions(questions, self.rng)

        if requested_count is not None:
            selected_questions = self.limit_question_count(selected_questions, requested_count)

        logger.debug(f"Selected {len(selected_questions)} of {len(questions)} questions")
        return selected_questions

    def limit_question_count(self, questions: List[Question], count: int) -> List[Question]:
        """
        Limit the number of questions to the specified count.

        Args:
            questions: List of questions to limit
            count: Maximum number of questions to return

        Returns:
            List limited to the specified count

        Note:
            If count is greater than available questions, returns all questions.
            If count is less than 1, returns empty list.
        """
        if count < 1:
            return []

        return questions[:count]
