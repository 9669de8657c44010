"""
Data manager for JSON quiz category files and question validation.
"""
import json
import os
import logging
import re
from typing import Dict, List, Optional
from pathlib import Path

from .models import Question, QuizCategory

SLUG_DISALLOWED = re.compile(r'[^a-z0-9-]', re.IGNORECASE)
MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB


def sanitize_slug(category_slug: str) -> str:
    """Strip everything except letters, digits and hyphens from a category slug."""
    if not isinstance(category_slug, str):
        return ""
    return SLUG_DISALLOWED.sub('', category_slug)


class DataManager:
    """Loads and validates quiz categories, one JSON file per category."""

    def __init__(self, quiz_directory: str = "./quizzes/"):
        """
        Initialize DataManager with quiz directory path.

        Args:
            quiz_directory: Path to directory containing JSON category files
        """
        self.quiz_directory = Path(quiz_directory)
        self.logger = logging.getLogger(__name__)
        self._question_cache: Dict[str, List[Question]] = {}
        self._metadata_cache: Dict[str, Dict[str, Optional[str]]] = {}
        self.load_errors: List[str] = []  # Track loading errors for user feedback

    def get_questions(self, category_slug: str) -> List[Question]:
        """
        Get every question of a category.

        Never raises: an invalid slug, a missing or unreadable file, bad JSON
        or an invalid structure all produce an empty list.

        Args:
            category_slug: Category identifier, the file name without extension

        Returns:
            List of Question objects, empty if the category cannot be loaded
        """
        slug = sanitize_slug(category_slug)
        if not slug:
            self._record_error(f"Invalid category slug: {category_slug!r}")
            return []

        if slug in self._question_cache:
            return list(self._question_cache[slug])

        data = self._load_single_file(self.quiz_directory / f"{slug}.json")
        if data is None:
            return []

        questions = self._parse_questions(data)
        self._question_cache[slug] = questions
        self._metadata_cache[slug] = self._parse_metadata(data)
        self.logger.info(f"Loaded category '{slug}' with {len(questions)} questions")
        return list(questions)

    def _load_single_file(self, file_path: Path) -> Optional[object]:
        """
        Load and parse a single JSON file.

        Args:
            file_path: Path to the JSON file

        Returns:
            Parsed JSON data or None if loading failed
        """
        try:
            if file_path.stat().st_size > MAX_FILE_SIZE:
                self._record_error(f"Quiz file too large: {file_path}")
                return None
            with open(file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            if self.validate_quiz_structure(data):
                return data
            self._record_error(f"Invalid quiz structure in {file_path}")
            return None
        except json.JSONDecodeError as e:
            self._record_error(f"Invalid JSON in {file_path}: {e}")
            return None
        except FileNotFoundError:
            self._record_error(f"Quiz file not found: {file_path}")
            return None
        except OSError as e:
            self._record_error(f"Failed to read quiz file {file_path}: {e}")
            return None

    def _record_error(self, message: str) -> None:
        self.logger.error(message)
        self.load_errors.append(message)

    @staticmethod
    def _question_list(data) -> Optional[list]:
        if isinstance(data, list):
            return data
        if isinstance(data, dict) and isinstance(data.get("questions"), list):
            return data["questions"]
        return None

    def validate_quiz_structure(self, data) -> bool:
        """
        Validate that JSON data has the correct category structure.

        Expected structure, either a bare array of questions or:
        {
            "name": str,          # Optional
            "description": str,   # Optional
            "questions": [
                {
                    "id": str,
                    "question_text": str,
                    "options": [str, str, ...],
                    "correct_answer_index": int,
                    "type": str,          # Optional
                    "explanation": str    # Optional
                }
            ]
        }

        Args:
            data: Parsed JSON data to validate

        Returns:
            True if structure is valid, False otherwise
        """
        questions = self._question_list(data)
        if questions is None:
            self.logger.error("Quiz data must be an array or an object with a 'questions' array")
            return False

        if not questions:
            self.logger.error("Question array cannot be empty")
            return False

        seen_ids = set()
        for i, question_data in enumerate(questions):
            if not isinstance(question_data, dict):
                self.logger.error(f"Question {i} must be an object")
                return False

            for required in ("id", "question_text", "options", "correct_answer_index"):
                if required not in question_data:
                    self.logger.error(f"Question {i} missing '{required}' field")
                    return False

            if not isinstance(question_data["id"], (str, int)) or isinstance(question_data["id"], bool):
                self.logger.error(f"Question {i} 'id' field must be a string or integer")
                return False

            question_id = str(question_data["id"])
            if question_id in seen_ids:
                self.logger.error(f"Question {i} has duplicate id '{question_id}'")
                return False
            seen_ids.add(question_id)

            if not isinstance(question_data["question_text"], str):
                self.logger.error(f"Question {i} 'question_text' field must be a string")
                return False

            options = question_data["options"]
            if not isinstance(options, list) or len(options) < 2:
                self.logger.error(f"Question {i} 'options' field must be an array of at least 2 entries")
                return False

            if not all(isinstance(option, str) for option in options):
                self.logger.error(f"Question {i} options must be strings")
                return False

            index = question_data["correct_answer_index"]
            if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < len(options):
                self.logger.error(f"Question {i} 'correct_answer_index' must point into 'options'")
                return False

            for optional in ("type", "explanation"):
                if question_data.get(optional) is not None and not isinstance(question_data[optional], str):
                    self.logger.error(f"Question {i} '{optional}' field must be a string")
                    return False

        return True

    def _parse_questions(self, data) -> List[Question]:
        """
        Parse validated category data into Question objects.

        Args:
            data: Validated category data

        Returns:
            List of Question objects
        """
        return [Question.from_dict(question_data) for question_data in self._question_list(data)]

    @staticmethod
    def _parse_metadata(data) -> Dict[str, Optional[str]]:
        if not isinstance(data, dict):
            return {"name": None, "description": None}
        return {"name": data.get("name"), "description": data.get("description")}

    def get_categories(self) -> List[QuizCategory]:
        """
        List every category that has a valid question file.

        Returns:
            Categories sorted by slug
        """
        try:
            if not self.quiz_directory.is_dir():
                self._record_error(f"Quiz directory not found: {self.quiz_directory}")
                return []
            json_files = sorted(self.quiz_directory.glob("*.json"))
        except OSError as e:
            self._record_error(f"System error scanning {self.quiz_directory}: {e}")
            return []

        categories = []
        for json_file in json_files:
            slug = json_file.stem
            if sanitize_slug(slug) != slug:
                self.logger.warning(f"Skipping quiz file with unsupported name: {json_file.name}")
                continue

            questions = self.get_questions(slug)
            if not questions:
                continue

            metadata = self._metadata_cache.get(slug, {})
            categories.append(QuizCategory(
                slug=slug,
                name=metadata.get("name") or slug.replace('-', ' ').title(),
                description=metadata.get("description"),
                question_count=len(questions)
            ))

        return categories

    def category_exists(self, category_slug: str) -> bool:
        """
        Check if a category file exists for the given slug.

        Args:
            category_slug: Category identifier

        Returns:
            True if the category file exists, False otherwise
        """
        slug = sanitize_slug(category_slug)
        if not slug:
            return False
        if slug in self._question_cache:
            return True
        path = self.quiz_directory / f"{slug}.json"
        return path.is_file() and os.access(path, os.R_OK)

    def clear_cache(self) -> None:
        """Forget cached categories so the next read goes back to disk."""
        self._question_cache.clear()
        self._metadata_cache.clear()
        self.load_errors.clear()

    def get_load_errors(self) -> List[str]:
        """
        Get list of errors encountered while loading categories.

        Returns:
            List of error messages
        """
        return self.load_errors.copy()

    def has_load_errors(self) -> bool:
        return len(self.load_errors) > 0
