"""
Core data models for the Dharma Quiz Bot.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from datetime import datetime


@dataclass(frozen=True)
class Question:
    """Represents a single multiple-choice quiz question."""
    id: str
    question_text: str
    options: List[str]
    correct_answer_index: int
    type: Optional[str] = None
    explanation: Optional[str] = None

    def is_correct(self, selected_index: int) -> bool:
        return selected_index == self.correct_answer_index

    def to_dict(self) -> Dict:
        data = {
            "id": self.id,
            "question_text": self.question_text,
            "options": list(self.options),
            "correct_answer_index": self.correct_answer_index,
        }
        if self.type is not None:
            data["type"] = self.type
        if self.explanation is not None:
            data["explanation"] = self.explanation
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> "Question":
        options = list(data["options"])
        correct_answer_index = int(data["correct_answer_index"])
        if not 0 <= correct_answer_index < len(options):
            raise ValueError(f"correct_answer_index {correct_answer_index} out of range for question {data['id']}")
        return cls(
            id=str(data["id"]),
            question_text=data["question_text"],
            options=options,
            correct_answer_index=correct_answer_index,
            type=data.get("type"),
            explanation=data.get("explanation"),
        )


@dataclass
class QuizSettings:
    """Configuration settings for quiz sessions."""
    question_count: Optional[int] = 10
    progress_expiry_hours: int = 24
    anonymous_question_limit: int = 10
    anonymous_timer_seconds: int = 120


@dataclass(frozen=True)
class QuizSession:
    """
    Progress through one attempt at a category's quiz.

    Sessions are never changed in place; every transition builds a new one.
    """
    category_id: str
    questions: Tuple[Question, ...]
    started_at: datetime
    current_index: int = 0
    answers: Dict[str, int] = field(default_factory=dict)
    score: int = 0

    @property
    def total(self) -> int:
        return len(self.questions)

    @property
    def is_complete(self) -> bool:
        return self.current_index >= len(self.questions)

    @property
    def current_question(self) -> Optional[Question]:
        if self.is_complete:
            return None
        return self.questions[self.current_index]

    def to_dict(self) -> Dict:
        return {
            "categoryId": self.category_id,
            "questions": [q.to_dict() for q in self.questions],
            "currentIndex": self.current_index,
            "answers": dict(self.answers),
            "score": self.score,
            "startedAt": self.started_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "QuizSession":
        """
        Rebuild a session from its serialized form.

        Raises:
            KeyError, TypeError, ValueError: If the payload is malformed
        """
        questions = tuple(Question.from_dict(q) for q in data["questions"])
        answers = data["answers"]
        if not isinstance(answers, dict):
            raise TypeError("answers must be an object")
        current_index = int(data["currentIndex"])
        if not 0 <= current_index <= len(questions):
            raise ValueError(f"currentIndex {current_index} out of range")

        answers = {str(k): int(v) for k, v in answers.items()}
        answered = questions[:current_index]
        if set(answers) != {q.id for q in answered} or len(answers) != current_index:
            raise ValueError("answers do not match the questions before currentIndex")

        score = int(data["score"])
        if score != sum(1 for q in answered if q.is_correct(answers[q.id])):
            raise ValueError(f"score {score} does not match the recorded answers")

        started_at = datetime.fromisoformat(data["startedAt"])
        if started_at.tzinfo is None:
            raise ValueError("startedAt must carry a timezone")

        return cls(
            category_id=str(data["categoryId"]),
            questions=questions,
            started_at=started_at,
            current_index=current_index,
            answers=answers,
            score=score,
        )


@dataclass(frozen=True)
class AnswerResult:
    """Outcome of submitting one answer."""
    session: QuizSession
    is_correct: bool
    correct_answer_index: int
    gated: bool = False
    gate_reason: Optional[str] = None


@dataclass(frozen=True)
class QuizSummary:
    """Final result of a completed session."""
    category_id: str
    score: int
    total: int
    answers: Dict[str, int]


@dataclass
class QuizCategory:
    """A named grouping of questions backed by one JSON file."""
    slug: str
    name: str
    description: Optional[str] = None
    question_count: int = 0


@dataclass
class QuizAttempt:
    """A finished attempt as shown on the leaderboard."""
    user_id: str
    display_name: str
    category_id: str
    score: int
    total: int
    completed_at: datetime

    def to_dict(self) -> Dict:
        return {
            "user_id": self.user_id,
            "display_name": self.display_name,
            "category_id": self.category_id,
            "score": self.score,
            "total": self.total,
            "completed_at": self.completed_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "QuizAttempt":
        return cls(
            user_id=str(data["user_id"]),
            display_name=data["display_name"],
            category_id=data["category_id"],
            score=int(data["score"]),
            total=int(data["total"]),
            completed_at=datetime.fromisoformat(data["completed_at"]),
        )
