"""
Tests for recent_content.py.

Each test gets its own temporary cache file; a fixed clock keeps timestamps
predictable.

Coverage:
  - save_game / getters  → union of recent ids and labels, newest-first trimming
  - clear                → removes the cache
  - failure handling     → missing, corrupt, malformed and unwritable caches never raise
  - concurrency          → parallel saves all land; readers never see a partial file
"""

import json
import tempfile
import threading
import unittest
from pathlib import Path
from unittest.mock import patch

from filmections.services.recent_content import RecentContentTracker


class TestRecentContentTracker(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = Path(self.tmpdir.name) / "cache" / "recent.json"
        self.tracker = RecentContentTracker(path=self.path, clock=lambda: 1736899200.0)

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_empty_when_no_cache(self):
        self.assertEqual(self.tracker.get_recent_film_ids(), set())
        self.assertEqual(self.tracker.get_recent_connections(), set())

    def test_save_and_read_back(self):
        self.tracker.save_game([1, 2, 3], ["Directed by Christopher Nolan"])
        self.tracker.save_game([3, 4], ["Heist films"])

        self.assertEqual(self.tracker.get_recent_film_ids(), {1, 2, 3, 4})
        self.assertEqual(
            self.tracker.get_recent_connections(),
            {"Directed by Christopher Nolan", "Heist films"},
        )

        stored = json.loads(self.path.read_text())
        self.assertEqual(stored[0]["filmIds"], [3, 4])
        self.assertEqual(stored[0]["timestamp"], 1736899200000)

    def test_keeps_only_five_newest_games(self):
        for game in range(7):
            self.tracker.save_game([game], [f"Connection {game}"])

        self.assertEqual(self.tracker.get_recent_film_ids(), {2, 3, 4, 5, 6})
        self.assertNotIn("Connection 1", self.tracker.get_recent_connections())

    def test_clear(self):
        self.tracker.save_game([1], ["x"])
        self.tracker.clear()

        self.assertFalse(self.path.exists())
        self.assertEqual(self.tracker.get_recent_film_ids(), set())
        # Clearing twice is harmless.
        self.tracker.clear()

    def test_corrupt_cache_is_ignored(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text("{not json")

        self.assertEqual(self.tracker.get_recent_film_ids(), set())

    def test_unexpected_shape_is_ignored(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text(json.dumps({"filmIds": [1]}))

        self.assertEqual(self.tracker.get_recent_connections(), set())

    def test_malformed_entries_are_skipped(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text(json.dumps([
            {"filmIds": None, "connections": None, "timestamp": 1},
            {"filmIds": [7, 8], "connections": ["Heist films"], "timestamp": 2},
            {"filmIds": [9]},
            "not a game",
        ]))

        with self.assertLogs("filmections.services.recent_content", level="WARNING"):
            self.assertEqual(self.tracker.get_recent_film_ids(), {7, 8})
        self.assertEqual(self.tracker.get_recent_connections(), {"Heist films"})

    def test_save_drops_malformed_entries(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text(json.dumps([{"filmIds": None, "connections": None}]))

        self.tracker.save_game([1], ["x"])

        stored = json.loads(self.path.read_text())
        self.assertEqual([game["filmIds"] for game in stored], [[1]])

    def test_write_failure_is_swallowed(self):
        self.tracker.save_game([1], ["x"])

        with patch("filmections.services.recent_content.os.replace", side_effect=OSError("disk full")):
            with self.assertLogs("filmections.services.recent_content", level="WARNING"):
                self.tracker.save_game([2], ["y"])

        # The previous cache survives and no temp file is left behind.
        self.assertEqual(self.tracker.get_recent_film_ids(), {1})
        self.assertEqual(list(self.path.parent.iterdir()), [self.path])

    def test_concurrent_saves_keep_every_game(self):
        tracker = RecentContentTracker(path=self.path, max_games=1000)
        workers = [
            threading.Thread(target=tracker.save_game, args=([i], [f"Connection {i}"]))
            for i in range(100)
        ]
        readers = [threading.Thread(target=tracker.get_recent_film_ids) for _ in range(20)]

        with patch("filmections.services.recent_content.logger") as mock_logger:
            for thread in workers + readers:
                thread.start()
            for thread in workers + readers:
                thread.join()

        mock_logger.warning.assert_not_called()

        self.assertEqual(tracker.get_recent_film_ids(), set(range(100)))
        self.assertEqual(len(json.loads(self.path.read_text())), 100)

    @patch.dict("os.environ", {"FILMECTIONS_RECENT_CACHE": "/tmp/elsewhere.json"})
    def test_path_from_environment(self):
        self.assertEqual(RecentContentTracker().path, Path("/tmp/elsewhere.json"))


if __name__ == "__main__":
    unittest.main()
