"""
Limits applied to participants who have not signed in.
"""
from dataclasses import dataclass
from typing import Optional

ANONYMOUS_QUESTION_LIMIT = 10
ANONYMOUS_TIMER_SECONDS = 120  # 2 minutes

GATE_QUESTION_LIMIT = "question_limit"
GATE_TIME_LIMIT = "time_limit"


def gate_reason(
    authenticated: bool,
    questions_answered: int,
    elapsed_seconds: float,
    question_limit: int = ANONYMOUS_QUESTION_LIMIT,
    timer_seconds: int = ANONYMOUS_TIMER_SECONDS,
) -> Optional[str]:
    """Return which limit stops an anonymous session, or None if it may continue."""
    if authenticated:
        return None
    if questions_answered >= question_limit:
        return GATE_QUESTION_LIMIT
    if elapsed_seconds >= timer_seconds:
        return GATE_TIME_LIMIT
    return None


def should_gate(
    authenticated: bool,
    questions_answered: int,
    elapsed_seconds: float,
    question_limit: int = ANONYMOUS_QUESTION_LIMIT,
    timer_seconds: int = ANONYMOUS_TIMER_SECONDS,
) -> bool:
    """
    Check whether a session must stop and ask the participant to sign in.

    Either limit is enough to gate an anonymous participant. Authenticated
    participants are never gated.
    """
    return gate_reason(
        authenticated, questions_answered, elapsed_seconds, question_limit, timer_seconds
    ) is not None


@dataclass(frozen=True)
class AnonymousPolicy:
    """Configurable limits for anonymous participants."""
    question_limit: int = ANONYMOUS_QUESTION_LIMIT
    timer_seconds: int = ANONYMOUS_TIMER_SECONDS

    def should_gate(self, authenticated: bool, questions_answered: int, elapsed_seconds: float) -> bool:
        return should_gate(
            authenticated, questions_answered, elapsed_seconds, self.question_limit, self.timer_seconds
        )

    def gate_reason(self, authenticated: bool, questions_answered: int, elapsed_seconds: float) -> Optional[str]:
        return gate_reason(
            authenticated, questions_answered, elapsed_seconds, self.question_limit, self.timer_seconds
        )

    def remaining_questions(self, authenticated: bool, questions_answered: int) -> Optional[int]:
        """Questions left before the limit, None when no limit applies."""
        if authenticated:
            return None
        return max(self.question_limit - questions_answered, 0)

    def remaining_seconds(self, authenticated: bool, elapsed_seconds: float) -> Optional[int]:
        """Whole seconds left on the anonymous timer, None when no timer applies."""
        if authenticated:
            return None
        return max(int(self.timer_seconds - elapsed_seconds), 0)
