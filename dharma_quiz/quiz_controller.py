"""
Quiz session controller for the Dharma Quiz Bot.
Drives the lifecycle of a participant's quiz session: start, answer,
complete, restart, and resume from saved progress.
"""
import logging
import random
from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, List, Optional, Any
from enum import Enum

from .models import AnswerResult, Question, QuizSession, QuizSummary
from .quiz_engine import QuizEngine
from .data_manager import DataManager
from .progress_store import ProgressStore, utc_now
from .anonymous_policy import AnonymousPolicy


class SessionState(Enum):
    """Enumeration of possible quiz session states."""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class QuizControllerError(Exception):
    """Base exception for quiz controller errors."""
    pass


class InsufficientQuestionsError(QuizControllerError):
    """Raised when a category has no questions to start a quiz with."""
    pass


class InvalidTransitionError(QuizControllerError):
    """Raised when an operation is not allowed in the session's current state."""
    pass


class InvalidAnswerError(QuizControllerError):
    """Raised when the selected option does not exist for the question."""
    pass


class QuizController:
    """
    Orchestrates a participant's quiz sessions.

    Sessions are values: every transition returns a new QuizSession and
    leaves the one passed in untouched. Each transition that changes a
    session also writes it to the progress store.
    """

    def __init__(
        self,
        progress_store: ProgressStore,
        data_manager: Optional[DataManager] = None,
        policy: Optional[AnonymousPolicy] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the quiz controller.

        Args:
            progress_store: Where session progress is saved
            data_manager: Question source used by start_category
            policy: Limits for anonymous participants
            rng: Optional random source for shuffling
            clock: Returns the current time (timezone aware)
        """
        self.logger = logging.getLogger(__name__)
        self.progress_store = progress_store
        self.data_manager = data_manager
        self.policy = policy or AnonymousPolicy()
        self.quiz_engine = QuizEngine(rng)
        self.clock = clock

    def start(
        self,
        category_id: str,
        all_questions: List[Question],
        requested_count: Optional[int] = None
    ) -> QuizSession:
        """
        Start a fresh session from a category's questions.

        Args:
            category_id: Category the questions belong to
            all_questions: Every available question of the category
            requested_count: Number of questions wanted, None for all

        Returns:
            The new session, already saved

        Raises:
            InsufficientQuestionsError: If there are no questions
        """
        if not all_questions:
            self.logger.warning(f"Cannot start quiz for '{category_id}': no questions available")
            raise InsufficientQuestionsError(f"No questions available for category: {category_id}")

        selected = self.quiz_engine.select_questions(all_questions, requested_count)
        if not selected:
            raise InsufficientQuestionsError(
                f"No questions left for category {category_id} after applying count {requested_count}"
            )

        session = QuizSession(
            category_id=category_id,
            questions=tuple(selected),
            started_at=self.clock(),
        )
        self.progress_store.save(category_id, session)

        self.logger.info(f"Started quiz session: category='{category_id}', questions={len(selected)}")
        return session

    def start_category(self, category_id: str, requested_count: Optional[int] = None) -> QuizSession:
        """
        Start a fresh session with questions read from the question source.

        Raises:
            InsufficientQuestionsError: If the category has no questions
        """
        if self.data_manager is None:
            raise InsufficientQuestionsError("No question source configured")
        return self.start(category_id, self.data_manager.get_questions(category_id), requested_count)

    def resume(self, category_id: str) -> Optional[QuizSession]:
        """
        Load saved progress for a category.

        Returns:
            The saved session, or None when the caller should start fresh
        """
        session = self.progress_store.load(category_id)
        if session is not None:
            self.logger.info(
                f"Resumed quiz session: category='{category_id}', "
                f"question {session.current_index + 1}/{session.total}"
            )
        return session

    def answer(
        self,
        session: QuizSession,
        question_id: str,
        selected_index: int,
        authenticated: bool = False
    ) -> AnswerResult:
        """
        Record the answer to the current question.

        Args:
            session: Session being answered
            question_id: Id of the question being answered
            selected_index: Index of the chosen option
            authenticated: Whether the participant is signed in

        Returns:
            AnswerResult with the new session and the gating signal

        Raises:
            InvalidTransitionError: If the session is already complete or the
                question is not the current one
            InvalidAnswerError: If selected_index is not an option
        """
        if session.is_complete:
            raise InvalidTransitionError("Quiz session is already complete")

        question = session.questions[session.current_index]
        if question.id != question_id:
            raise InvalidTransitionError(
                f"Expected answer for question '{question.id}', got '{question_id}'"
            )

        if not 0 <= selected_index < len(question.options):
            raise InvalidAnswerError(
                f"Option {selected_index} does not exist for question '{question.id}'"
            )

        is_correct = question.is_correct(selected_index)
        answers = dict(session.answers)
        answers[question.id] = selected_index

        updated = replace(
            session,
            answers=answers,
            score=session.score + (1 if is_correct else 0),
            current_index=session.current_index + 1,
        )
        self.progress_store.save(updated.category_id, updated)

        reason = self.policy.gate_reason(authenticated, len(answers), self.elapsed_seconds(updated))
        if reason:
            self.logger.info(f"Anonymous session for '{updated.category_id}' gated: {reason}")

        return AnswerResult(
            session=updated,
            is_correct=is_correct,
            correct_answer_index=question.correct_answer_index,
            gated=reason is not None,
            gate_reason=reason,
        )

    def complete(self, session: QuizSession) -> QuizSummary:
        """
        Finish a session and discard its saved progress.

        Raises:
            InvalidTransitionError: If questions remain unanswered
        """
        if session.current_index != session.total:
            raise InvalidTransitionError(
                f"Cannot complete quiz: {session.total - session.current_index} questions remaining"
            )

        self.progress_store.clear(session.category_id)
        self.logger.info(
            f"Completed quiz session: category='{session.category_id}', "
            f"score={session.score}/{session.total}"
        )
        return QuizSummary(
            category_id=session.category_id,
            score=session.score,
            total=session.total,
            answers=dict(session.answers),
        )

    def restart(
        self,
        category_id: str,
        all_questions: List[Question],
        requested_count: Optional[int] = None
    ) -> QuizSession:
        """Discard saved progress and start a fresh session."""
        self.progress_store.clear(category_id)
        return self.start(category_id, all_questions, requested_count)

    def elapsed_seconds(self, session: QuizSession) -> float:
        return max((self.clock() - session.started_at).total_seconds(), 0.0)

    def gate_reason(self, session: QuizSession, authenticated: bool) -> Optional[str]:
        """Which anonymous limit stops the session right now, None if it may continue."""
        return self.policy.gate_reason(authenticated, len(session.answers), self.elapsed_seconds(session))

    def is_gated(self, session: QuizSession, authenticated: bool) -> bool:
        """Re-evaluate the anonymous limits for a session right now."""
        return self.gate_reason(session, authenticated) is not None

    def get_session_state(self, session: Optional[QuizSession]) -> SessionState:
        """
        Get the current state of a session.

        Args:
            session: Session to inspect, None when nothing is loaded

        Returns:
            Current session state
        """
        if session is None:
            return SessionState.NOT_STARTED
        if session.is_complete:
            return SessionState.COMPLETED
        return SessionState.IN_PROGRESS

    def get_session_progress(self, session: QuizSession, authenticated: bool = False) -> Dict[str, Any]:
        """
        Get progress information for display.

        Returns:
            Dictionary with question position, score and remaining limits
        """
        elapsed = self.elapsed_seconds(session)
        return {
            'category_id': session.category_id,
            'current_question': min(session.current_index + 1, session.total),
            'total_questions': session.total,
            'answered': len(session.answers),
            'score': session.score,
            'state': self.get_session_state(session).value,
            'remaining_questions': self.policy.remaining_questions(authenticated, len(session.answers)),
            'remaining_seconds': self.policy.remaining_seconds(authenticated, elapsed),
        }
