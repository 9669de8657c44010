"""
Configuration manager for Dharma Quiz Bot settings and parameters.
"""
import logging
from datetime import timedelta
from typing import Optional, Dict, Any, List
from pathlib import Path
import os

from .models import QuizSettings
from .anonymous_policy import AnonymousPolicy, ANONYMOUS_QUESTION_LIMIT, ANONYMOUS_TIMER_SECONDS


class ConfigManager:
    """Manages bot configuration settings and quiz parameters."""

    # Default configuration values
    DEFAULT_QUESTION_COUNT = 10
    DEFAULT_PROGRESS_EXPIRY_HOURS = 24
    DEFAULT_QUIZ_DIRECTORY = "./quizzes/"
    DEFAULT_PROGRESS_DIRECTORY = "./data/progress/"
    DEFAULT_LEADERBOARD_PATH = "./data/leaderboard.json"
    DEFAULT_AUTHENTICATED_ROLE = "Devotee"

    # Validation limits
    MIN_QUESTION_COUNT = 1
    MAX_QUESTION_COUNT = 100
    MIN_EXPIRY_HOURS = 1
    MAX_EXPIRY_HOURS = 168  # 1 week
    MIN_ANONYMOUS_QUESTIONS = 1
    MAX_ANONYMOUS_QUESTIONS = 100
    MIN_ANONYMOUS_TIMER = 10
    MAX_ANONYMOUS_TIMER = 3600  # 1 hour

    def __init__(self):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self.reset_to_defaults()

    def get_quiz_settings(self) -> QuizSettings:
        """
        Get a copy of the current quiz settings.

        Returns:
            QuizSettings object with current configuration
        """
        return QuizSettings(
            question_count=self._settings.question_count,
            progress_expiry_hours=self._settings.progress_expiry_hours,
            anonymous_question_limit=self._settings.anonymous_question_limit,
            anonymous_timer_seconds=self._settings.anonymous_timer_seconds
        )

    def get_anonymous_policy(self) -> AnonymousPolicy:
        return AnonymousPolicy(
            question_limit=self._settings.anonymous_question_limit,
            timer_seconds=self._settings.anonymous_timer_seconds
        )

    def get_progress_max_age(self) -> timedelta:
        return timedelta(hours=self._settings.progress_expiry_hours)

    @staticmethod
    def _failure(error_msg: str, user_message: str) -> Dict[str, Any]:
        return {'success': False, 'error': error_msg, 'user_message': user_message}

    @staticmethod
    def _success(message: str) -> Dict[str, Any]:
        return {'success': True, 'message': message, 'user_message': f"✅ {message}"}

    def _validate_int(self, value, label: str, minimum: int, maximum: int) -> Optional[Dict[str, Any]]:
        """Return a failure result if value is not an int within range, None otherwise."""
        if not isinstance(value, int) or isinstance(value, bool):
            error_msg = f"{label} must be an integer, got {type(value).__name__}"
            self.logger.error(error_msg)
            return self._failure(error_msg, f"❌ Invalid input: Expected a number, got {type(value).__name__}")

        if value < minimum:
            error_msg = f"{label} must be at least {minimum}"
            self.logger.error(error_msg)
            return self._failure(error_msg, f"❌ {label} too small: Minimum is {minimum}")

        if value > maximum:
            error_msg = f"{label} cannot exceed {maximum}"
            self.logger.error(error_msg)
            return self._failure(error_msg, f"❌ {label} too large: Maximum is {maximum}")

        return None

    def set_question_count(self, count: Optional[int]) -> Dict[str, Any]:
        """
        Set the number of questions drawn for each quiz.

        Args:
            count: Number of questions, or None to use all questions

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if count is None:
            self._settings.question_count = None
            self.logger.info("Question count set to use all available questions")
            return self._success("Question count set to use all available questions")

        failure = self._validate_int(count, "Question count", self.MIN_QUESTION_COUNT, self.MAX_QUESTION_COUNT)
        if failure:
            return failure

        self._settings.question_count = count
        self.logger.info(f"Question count set to {count}")
        return self._success(f"Question count set to {count}")

    def get_question_count(self) -> Optional[int]:
        return self._settings.question_count

    def set_progress_expiry_hours(self, hours: int) -> Dict[str, Any]:
        """
        Set how long saved progress stays resumable.

        Args:
            hours: Expiry window in hours

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        failure = self._validate_int(hours, "Progress expiry", self.MIN_EXPIRY_HOURS, self.MAX_EXPIRY_HOURS)
        if failure:
            return failure

        self._settings.progress_expiry_hours = hours
        self.logger.info(f"Progress expiry set to {hours} hours")
        return self._success(f"Progress expiry set to {hours} hours")

    def set_anonymous_question_limit(self, limit: int) -> Dict[str, Any]:
        failure = self._validate_int(
            limit, "Anonymous question limit", self.MIN_ANONYMOUS_QUESTIONS, self.MAX_ANONYMOUS_QUESTIONS
        )
        if failure:
            return failure

        self._settings.anonymous_question_limit = limit
        self.logger.info(f"Anonymous question limit set to {limit}")
        return self._success(f"Anonymous question limit set to {limit}")

    def set_anonymous_timer_seconds(self, seconds: int) -> Dict[str, Any]:
        failure = self._validate_int(
            seconds, "Anonymous timer", self.MIN_ANONYMOUS_TIMER, self.MAX_ANONYMOUS_TIMER
        )
        if failure:
            return failure

        self._settings.anonymous_timer_seconds = seconds
        self.logger.info(f"Anonymous timer set to {seconds} seconds")
        return self._success(f"Anonymous timer set to {seconds} seconds")

    def _validate_path(self, directory, label: str) -> Optional[Dict[str, Any]]:
        if not isinstance(directory, str):
            error_msg = f"{label} must be a string, got {type(directory).__name__}"
            self.logger.error(error_msg)
            return self._failure(error_msg, f"❌ Invalid input: Expected a path string, got {type(directory).__name__}")

        if not directory.strip():
            error_msg = f"{label} cannot be empty"
            self.logger.error(error_msg)
            return self._failure(error_msg, "❌ Path cannot be empty")

        # Check if path is reasonable (not system directories)
        normalized_path = str(Path(directory).resolve())
        system_dirs = ['/bin', '/usr', '/etc', '/sys', '/proc', 'C:\\Windows', 'C:\\Program Files']
        if any(normalized_path.startswith(sys_dir) for sys_dir in system_dirs):
            error_msg = f"Cannot use system directory: {normalized_path}"
            self.logger.error(error_msg)
            return self._failure(error_msg, f"❌ Cannot use system directory: {directory}")

        return None

    def set_quiz_directory(self, directory: str) -> Dict[str, Any]:
        """
        Set the directory path for category files.

        Args:
            directory: Path to category files directory

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        failure = self._validate_path(directory, "Quiz directory")
        if failure:
            return failure

        self._quiz_directory = directory
        self.logger.info(f"Quiz directory set to {directory}")
        return self._success(f"Quiz directory set to {directory}")

    def get_quiz_directory(self) -> str:
        return self._quiz_directory

    def set_progress_directory(self, directory: Optional[str]) -> Dict[str, Any]:
        """
        Set where per-participant progress files are kept.

        Args:
            directory: Directory path, or None to disable saved progress
        """
        if directory is None:
            self._progress_directory = None
            self.logger.info("Saved progress disabled")
            return self._success("Saved progress disabled")

        failure = self._validate_path(directory, "Progress directory")
        if failure:
            return failure

        self._progress_directory = directory
        self.logger.info(f"Progress directory set to {directory}")
        return self._success(f"Progress directory set to {directory}")

    def get_progress_directory(self) -> Optional[str]:
        return self._progress_directory

    def set_leaderboard_path(self, path: Optional[str]) -> Dict[str, Any]:
        if path is None:
            self._leaderboard_path = None
            self.logger.info("Leaderboard kept in memory only")
            return self._success("Leaderboard kept in memory only")

        failure = self._validate_path(path, "Leaderboard path")
        if failure:
            return failure

        self._leaderboard_path = path
        self.logger.info(f"Leaderboard path set to {path}")
        return self._success(f"Leaderboard path set to {path}")

    def get_leaderboard_path(self) -> Optional[str]:
        return self._leaderboard_path

    def set_authenticated_role(self, role_name: str) -> Dict[str, Any]:
        """
        Set the guild role that marks a member as signed in.

        Args:
            role_name: Name of the Discord role
        """
        if not isinstance(role_name, str) or not role_name.strip():
            error_msg = "Authenticated role must be a non-empty string"
            self.logger.error(error_msg)
            return self._failure(error_msg, "❌ Role name cannot be empty")

        self._authenticated_role = role_name.strip()
        self.logger.info(f"Authenticated role set to {self._authenticated_role}")
        return self._success(f"Authenticated role set to {self._authenticated_role}")

    def get_authenticated_role(self) -> str:
        return self._authenticated_role

    def apply_config(self, config: Dict[str, Any]) -> List[str]:
        """
        Apply settings from a parsed config.json.

        Invalid entries are skipped and the defaults kept.

        Args:
            config: Parsed configuration dictionary

        Returns:
            List of error messages for settings that were rejected
        """
        quiz_config = config.get('quiz', {})
        anonymous_config = config.get('anonymous', {})
        bot_config = config.get('bot', {})

        results = []
        if 'quiz_directory' in quiz_config:
            results.append(self.set_quiz_directory(quiz_config['quiz_directory']))
        if 'default_question_count' in quiz_config:
            results.append(self.set_question_count(quiz_config['default_question_count']))
        if 'progress_directory' in quiz_config:
            results.append(self.set_progress_directory(quiz_config['progress_directory']))
        if 'progress_expiry_hours' in quiz_config:
            results.append(self.set_progress_expiry_hours(quiz_config['progress_expiry_hours']))
        if 'leaderboard_path' in quiz_config:
            results.append(self.set_leaderboard_path(quiz_config['leaderboard_path']))
        if 'question_limit' in anonymous_config:
            results.append(self.set_anonymous_question_limit(anonymous_config['question_limit']))
        if 'timer_seconds' in anonymous_config:
            results.append(self.set_anonymous_timer_seconds(anonymous_config['timer_seconds']))
        if 'authenticated_role' in bot_config:
            results.append(self.set_authenticated_role(bot_config['authenticated_role']))

        errors = [r['error'] for r in results if not r['success']]
        if errors:
            self.logger.warning(f"Ignored {len(errors)} invalid configuration values")
        else:
            self.logger.info("Configuration applied successfully")
        return errors

    def reset_to_defaults(self) -> None:
        """Reset all settings to their default values."""
        self._settings = QuizSettings(
            question_count=self.DEFAULT_QUESTION_COUNT,
            progress_expiry_hours=self.DEFAULT_PROGRESS_EXPIRY_HOURS,
            anonymous_question_limit=ANONYMOUS_QUESTION_LIMIT,
            anonymous_timer_seconds=ANONYMOUS_TIMER_SECONDS
        )
        self._quiz_directory = self.DEFAULT_QUIZ_DIRECTORY
        self._progress_directory: Optional[str] = self.DEFAULT_PROGRESS_DIRECTORY
        self._leaderboard_path: Optional[str] = self.DEFAULT_LEADERBOARD_PATH
        self._authenticated_role = self.DEFAULT_AUTHENTICATED_ROLE
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

        checks = [
            (self._settings.progress_expiry_hours, self.MIN_EXPIRY_HOURS, self.MAX_EXPIRY_HOURS,
             "progress expiry"),
            (self._settings.anonymous_question_limit, self.MIN_ANONYMOUS_QUESTIONS, self.MAX_ANONYMOUS_QUESTIONS,
             "anonymous question limit"),
            (self._settings.anonymous_timer_seconds, self.MIN_ANONYMOUS_TIMER, self.MAX_ANONYMOUS_TIMER,
             "anonymous timer"),
        ]
        if self._settings.question_count is not None:
            checks.append((self._settings.question_count, self.MIN_QUESTION_COUNT, self.MAX_QUESTION_COUNT,
                           "question count"))

        for value, minimum, maximum, label in checks:
            if not isinstance(value, int) or not minimum <= value <= maximum:
                validation_result["valid"] = False
                validation_result["issues"].append(f"Invalid {label}: {value}")

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
            str(self._settings.question_count)
            if self._settings.question_count is not None
            else "all available"
        )
        progress_str = self._progress_directory or "disabled"

        return (
            f"Quiz Settings:\n"
            f"• Questions: {question_count_str}\n"
            f"• Saved progress: {progress_str} (expires after {self._settings.progress_expiry_hours}h)\n"
            f"• Guest limit: {self._settings.anonymous_question_limit} questions "
            f"or {self._settings.anonymous_timer_seconds} seconds\n"
            f"• Sign-in role: {self._authenticated_role}\n"
            f"• Quiz Directory: {self._quiz_directory}"
        )

    def get_configuration_health_check(self) -> Dict[str, Any]:
        """
        Perform a health check of the configuration.

        Returns:
            Dictionary with health status and recommendations
        """
        health_check = {
            'healthy': True,
            'warnings': [],
            'errors': [],
            'recommendations': []
        }

        validation_result = self.validate_settings()
        if not validation_result['valid']:
            health_check['healthy'] = False
            health_check['errors'].extend(f"❌ {issue}" for issue in validation_result['issues'])

        quiz_dir = Path(self._quiz_directory)
        if not quiz_dir.exists():
            health_check['healthy'] = False
            health_check['errors'].append(f"❌ Quiz directory does not exist: {self._quiz_directory}")
            health_check['recommendations'].append("Add category JSON files to the quiz directory.")
        elif not os.access(quiz_dir, os.R_OK):
            health_check['healthy'] = False
            health_check['errors'].append(f"❌ Cannot read quiz directory: {self._quiz_directory}")
            health_check['recommendations'].append("Check file permissions for the quiz directory.")

        if self._progress_directory is None:
            health_check['warnings'].append("⚠️ Saved progress is disabled; sessions cannot be resumed")

        return health_check
