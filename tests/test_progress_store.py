"""
Unit tests for ProgressStore and the scoped storages behind it.
"""
import json
import logging
import shutil
import tempfile
import unittest
from datetime import timedelta
from pathlib import Path
from unittest.mock import Mock

from dharma_quiz.models import QuizSession
from dharma_quiz.progress_store import ProgressStore, get_quiz_storage_key
from dharma_quiz.storage import JsonFileStorage, MemoryStorage
from tests.test_fixtures import FakeClock, TestFixtures


class TestProgressStore(unittest.TestCase):
    """Test cases for saving, loading and clearing progress."""

    def setUp(self):
        logging.disable(logging.CRITICAL)
        self.clock = FakeClock()
        self.storage = MemoryStorage()
        self.store = ProgressStore(self.storage, clock=self.clock)
        self.session = TestFixtures.create_sample_quiz_session()

    def tearDown(self):
        logging.disable(logging.NOTSET)

    def test_storage_key(self):
        self.assertEqual(get_quiz_storage_key("ramayana"), "quiz_progress_ramayana")

    def test_save_then_load_round_trip(self):
        """Test that a saved session loads back equal to the original."""
        self.assertTrue(self.store.save("bhagavad-gita", self.session))

        loaded = self.store.load("bhagavad-gita")

        self.assertEqual(loaded, self.session)
        self.assertEqual(list(loaded.answers), ["q1", "q2"])

    def test_save_stamps_saved_at(self):
        self.store.save("bhagavad-gita", self.session)

        payload = json.loads(self.storage.get("quiz_progress_bhagavad-gita"))

        self.assertEqual(payload["savedAt"], self.clock.now.isoformat())
        self.assertEqual(payload["categoryId"], "bhagavad-gita")

    def test_loaded_session_has_no_saved_at(self):
        self.store.save("bhagavad-gita", self.session)
        loaded = self.store.load("bhagavad-gita")
        self.assertNotIn("savedAt", loaded.to_dict())

    def test_load_missing_returns_none(self):
        self.assertIsNone(self.store.load("ramayana"))

    def test_load_expired_returns_none_and_clears_slot(self):
        """Test that progress saved 25 hours ago is discarded."""
        payload = self.session.to_dict()
        payload["savedAt"] = (self.clock.now - timedelta(hours=25)).isoformat()
        self.storage.set("quiz_progress_bhagavad-gita", json.dumps(payload))

        self.assertIsNone(self.store.load("bhagavad-gita"))
        self.assertIsNone(self.storage.get("quiz_progress_bhagavad-gita"))

    def test_load_just_inside_window(self):
        self.store.save("bhagavad-gita", self.session)
        self.clock.advance(hours=24)

        self.assertEqual(self.store.load("bhagavad-gita"), self.session)

        self.clock.advance(seconds=1)
        self.assertIsNone(self.store.load("bhagavad-gita"))

    def test_load_without_saved_at_is_not_expired(self):
        self.storage.set("quiz_progress_bhagavad-gita", json.dumps(self.session.to_dict()))
        self.assertEqual(self.store.load("bhagavad-gita"), self.session)

    def test_custom_max_age(self):
        store = ProgressStore(self.storage, max_age=timedelta(hours=1), clock=self.clock)
        store.save("bhagavad-gita", self.session)
        self.clock.advance(hours=2)
        self.assertIsNone(store.load("bhagavad-gita"))

    def test_load_corrupt_payload_returns_none(self):
        for payload in ["{not json", "[1, 2, 3]", json.dumps({"categoryId": "x"}), '"text"']:
            with self.subTest(payload=payload):
                self.storage.set("quiz_progress_bhagavad-gita", payload)
                self.assertIsNone(self.store.load("bhagavad-gita"))

    def test_load_with_out_of_range_index_returns_none(self):
        payload = self.session.to_dict()
        payload["currentIndex"] = 99
        self.storage.set("quiz_progress_bhagavad-gita", json.dumps(payload))
        self.assertIsNone(self.store.load("bhagavad-gita"))

    def test_load_inconsistent_payload_returns_none(self):
        """Test that a payload breaking the session's own bookkeeping is treated as absent."""
        def broken(**changes):
            payload = self.session.to_dict()
            payload.update(changes)
            return payload

        bad_question = dict(self.session.questions[0].to_dict(), correct_answer_index=9)
        cases = {
            "score above answered": broken(score=2),
            "score above index": broken(score=5),
            "extra answer": broken(answers={"q1": 2, "q2": 0, "q3": 1}),
            "missing answer": broken(answers={"q1": 2}),
            "answer for unreached question": broken(answers={"q1": 2, "q5": 0}),
            "correct index outside options": broken(
                questions=[bad_question] + [q.to_dict() for q in self.session.questions[1:]]
            ),
            "naive start time": broken(startedAt="2024-10-01T12:00:00"),
        }
        for label, payload in cases.items():
            with self.subTest(case=label):
                self.storage.set("quiz_progress_bhagavad-gita", json.dumps(payload))
                self.assertIsNone(self.store.load("bhagavad-gita"))

    def test_save_overwrites_previous(self):
        self.store.save("bhagavad-gita", self.session)
        fresh = QuizSession(
            category_id="bhagavad-gita",
            questions=self.session.questions,
            started_at=self.clock.now,
        )

        self.store.save("bhagavad-gita", fresh)

        self.assertEqual(self.store.load("bhagavad-gita").current_index, 0)

    def test_categories_use_separate_slots(self):
        self.store.save("bhagavad-gita", self.session)
        self.assertIsNone(self.store.load("ramayana"))

    def test_clear_twice_is_noop(self):
        self.store.save("bhagavad-gita", self.session)

        self.store.clear("bhagavad-gita")
        self.store.clear("bhagavad-gita")

        self.assertIsNone(self.store.load("bhagavad-gita"))

    def test_storage_failures_are_swallowed(self):
        """Test that storage errors never escape the store."""
        broken = Mock()
        broken.get.side_effect = OSError("disk gone")
        broken.set.side_effect = OSError("disk full")
        broken.remove.side_effect = OSError("disk gone")
        store = ProgressStore(broken, clock=self.clock)

        self.assertFalse(store.save("bhagavad-gita", self.session))
        self.assertIsNone(store.load("bhagavad-gita"))
        store.clear("bhagavad-gita")

    def test_unavailable_storage_is_noop(self):
        store = ProgressStore(None, clock=self.clock)

        self.assertFalse(store.available)
        self.assertFalse(store.save("bhagavad-gita", self.session))
        self.assertIsNone(store.load("bhagavad-gita"))
        store.clear("bhagavad-gita")


class TestJsonFileStorage(unittest.TestCase):
    """Test cases for the file-backed scoped storage."""

    def setUp(self):
        logging.disable(logging.CRITICAL)
        self.temp_dir = tempfile.mkdtemp()
        self.path = Path(self.temp_dir) / "progress" / "67890.json"
        self.storage = JsonFileStorage(self.path)

    def tearDown(self):
        logging.disable(logging.NOTSET)
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_get_missing_file(self):
        self.assertIsNone(self.storage.get("anything"))

    def test_set_creates_file(self):
        self.storage.set("key", "value")

        self.assertTrue(self.path.exists())
        self.assertEqual(self.storage.get("key"), "value")

    def test_remove(self):
        self.storage.set("a", "1")
        self.storage.set("b", "2")

        self.storage.remove("a")
        self.storage.remove("a")

        self.assertIsNone(self.storage.get("a"))
        self.assertEqual(self.storage.get("b"), "2")

    def test_last_write_wins_between_instances(self):
        other = JsonFileStorage(self.path)
        self.storage.set("key", "first")
        other.set("key", "second")
        self.assertEqual(self.storage.get("key"), "second")

    def test_corrupt_file_raises(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text("{broken", encoding='utf-8')
        with self.assertRaises(ValueError):
            self.storage.get("key")

    def test_progress_store_round_trip_on_disk(self):
        clock = FakeClock()
        store = ProgressStore(self.storage, clock=clock)
        session = TestFixtures.create_sample_quiz_session()

        store.save("bhagavad-gita", session)
        reopened = ProgressStore(JsonFileStorage(self.path), clock=clock)

        self.assertEqual(reopened.load("bhagavad-gita"), session)

    def test_progress_store_tolerates_corrupt_file(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text("{broken", encoding='utf-8')
        store = ProgressStore(self.storage, clock=FakeClock())

        self.assertIsNone(store.load("bhagavad-gita"))
        self.assertFalse(store.save("bhagavad-gita", TestFixtures.create_sample_quiz_session()))


if __name__ == '__main__':
    unittest.main()
