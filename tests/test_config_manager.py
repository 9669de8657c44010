"""
Unit tests for ConfigManager.
"""
import logging
import shutil
import tempfile
import unittest
from datetime import timedelta

from dharma_quiz.config_manager import ConfigManager
from dharma_quiz.anonymous_policy import AnonymousPolicy


class TestConfigManager(unittest.TestCase):
    """Test cases for ConfigManager setters and defaults."""

    def setUp(self):
        logging.disable(logging.CRITICAL)
        self.config_manager = ConfigManager()

    def tearDown(self):
        logging.disable(logging.NOTSET)

    def test_defaults(self):
        settings = self.config_manager.get_quiz_settings()

        self.assertEqual(settings.question_count, 10)
        self.assertEqual(settings.progress_expiry_hours, 24)
        self.assertEqual(settings.anonymous_question_limit, 10)
        self.assertEqual(settings.anonymous_timer_seconds, 120)
        self.assertEqual(self.config_manager.get_quiz_directory(), "./quizzes/")
        self.assertEqual(self.config_manager.get_authenticated_role(), "Devotee")
        self.assertEqual(self.config_manager.get_progress_max_age(), timedelta(hours=24))

    def test_get_quiz_settings_returns_copy(self):
        settings = self.config_manager.get_quiz_settings()
        settings.question_count = 99
        self.assertEqual(self.config_manager.get_question_count(), 10)

    def test_set_question_count_valid(self):
        result = self.config_manager.set_question_count(25)

        self.assertTrue(result['success'])
        self.assertEqual(result['message'], "Question count set to 25")
        self.assertEqual(self.config_manager.get_question_count(), 25)

    def test_set_question_count_none_uses_all(self):
        result = self.config_manager.set_question_count(None)

        self.assertTrue(result['success'])
        self.assertIsNone(self.config_manager.get_question_count())

    def test_set_question_count_invalid(self):
        for value, fragment in [(0, "at least 1"), (101, "cannot exceed 100"),
                                ("5", "must be an integer"), (True, "must be an integer")]:
            with self.subTest(value=value):
                result = self.config_manager.set_question_count(value)
                self.assertFalse(result['success'])
                self.assertIn(fragment, result['error'])
                self.assertTrue(result['user_message'].startswith("❌"))
        self.assertEqual(self.config_manager.get_question_count(), 10)

    def test_set_progress_expiry_hours(self):
        self.assertTrue(self.config_manager.set_progress_expiry_hours(48)['success'])
        self.assertEqual(self.config_manager.get_progress_max_age(), timedelta(hours=48))

        self.assertFalse(self.config_manager.set_progress_expiry_hours(0)['success'])
        self.assertFalse(self.config_manager.set_progress_expiry_hours(169)['success'])

    def test_anonymous_limits(self):
        self.assertTrue(self.config_manager.set_anonymous_question_limit(5)['success'])
        self.assertTrue(self.config_manager.set_anonymous_timer_seconds(300)['success'])

        self.assertEqual(self.config_manager.get_anonymous_policy(),
                         AnonymousPolicy(question_limit=5, timer_seconds=300))

    def test_anonymous_limits_invalid(self):
        self.assertFalse(self.config_manager.set_anonymous_question_limit(0)['success'])
        self.assertFalse(self.config_manager.set_anonymous_timer_seconds(5)['success'])
        self.assertFalse(self.config_manager.set_anonymous_timer_seconds(7200)['success'])
        self.assertEqual(self.config_manager.get_anonymous_policy(), AnonymousPolicy())

    def test_set_quiz_directory(self):
        temp_dir = tempfile.mkdtemp()
        try:
            result = self.config_manager.set_quiz_directory(temp_dir)
            self.assertTrue(result['success'])
            self.assertEqual(self.config_manager.get_quiz_directory(), temp_dir)
        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)

    def test_set_quiz_directory_invalid(self):
        for value in [None, "", "   ", "/etc/quizzes"]:
            with self.subTest(value=value):
                self.assertFalse(self.config_manager.set_quiz_directory(value)['success'])
        self.assertEqual(self.config_manager.get_quiz_directory(), "./quizzes/")

    def test_progress_directory_can_be_disabled(self):
        result = self.config_manager.set_progress_directory(None)

        self.assertTrue(result['success'])
        self.assertIsNone(self.config_manager.get_progress_directory())

    def test_leaderboard_path_can_be_memory_only(self):
        self.assertTrue(self.config_manager.set_leaderboard_path(None)['success'])
        self.assertIsNone(self.config_manager.get_leaderboard_path())

    def test_set_authenticated_role(self):
        self.assertTrue(self.config_manager.set_authenticated_role("  Member ")['success'])
        self.assertEqual(self.config_manager.get_authenticated_role(), "Member")
        self.assertFalse(self.config_manager.set_authenticated_role("")['success'])
        self.assertFalse(self.config_manager.set_authenticated_role(None)['success'])

    def test_apply_config(self):
        errors = self.config_manager.apply_config({
            "bot": {"authenticated_role": "Seeker"},
            "quiz": {
                "quiz_directory": "./quizzes/",
                "default_question_count": 5,
                "progress_directory": None,
                "progress_expiry_hours": 12,
                "leaderboard_path": None,
            },
            "anonymous": {"question_limit": 3, "timer_seconds": 60},
        })

        self.assertEqual(errors, [])
        self.assertEqual(self.config_manager.get_question_count(), 5)
        self.assertIsNone(self.config_manager.get_progress_directory())
        self.assertIsNone(self.config_manager.get_leaderboard_path())
        self.assertEqual(self.config_manager.get_progress_max_age(), timedelta(hours=12))
        self.assertEqual(self.config_manager.get_anonymous_policy(), AnonymousPolicy(3, 60))
        self.assertEqual(self.config_manager.get_authenticated_role(), "Seeker")

    def test_apply_config_keeps_defaults_for_invalid_values(self):
        errors = self.config_manager.apply_config({
            "quiz": {"default_question_count": 0},
            "anonymous": {"timer_seconds": "soon"},
        })

        self.assertEqual(len(errors), 2)
        self.assertEqual(self.config_manager.get_question_count(), 10)
        self.assertEqual(self.config_manager.get_anonymous_policy().timer_seconds, 120)

    def test_apply_empty_config(self):
        self.assertEqual(self.config_manager.apply_config({}), [])

    def test_reset_to_defaults(self):
        self.config_manager.set_question_count(50)
        self.config_manager.set_progress_directory(None)

        self.config_manager.reset_to_defaults()

        self.assertEqual(self.config_manager.get_question_count(), 10)
        self.assertEqual(self.config_manager.get_progress_directory(), "./data/progress/")

    def test_validate_settings(self):
        self.assertTrue(self.config_manager.validate_settings()['valid'])

        self.config_manager._settings.anonymous_timer_seconds = 0
        result = self.config_manager.validate_settings()

        self.assertFalse(result['valid'])
        self.assertIn("Invalid anonymous timer: 0", result['issues'])

    def test_settings_summary(self):
        self.config_manager.set_question_count(None)
        self.config_manager.set_progress_directory(None)

        summary = self.config_manager.get_settings_summary()

        self.assertIn("Questions: all available", summary)
        self.assertIn("Saved progress: disabled", summary)
        self.assertIn("Guest limit: 10 questions or 120 seconds", summary)
        self.assertIn("Sign-in role: Devotee", summary)

    def test_health_check(self):
        temp_dir = tempfile.mkdtemp()
        try:
            self.config_manager.set_quiz_directory(temp_dir)
            health = self.config_manager.get_configuration_health_check()
            self.assertTrue(health['healthy'])
            self.assertEqual(health['errors'], [])

            self.config_manager.set_quiz_directory(temp_dir + "/missing")
            self.config_manager.set_progress_directory(None)
            health = self.config_manager.get_configuration_health_check()
            self.assertFalse(health['healthy'])
            self.assertEqual(len(health['warnings']), 1)
        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)


if __name__ == '__main__':
    unittest.main()
