"""
Tests for game/game.py — the service layer between routes and sessions.

Puzzle storage, stats storage, the recent-content tracker and analytics are
all mocked; sessions run in memory.

Coverage:
  - start_game            → fresh session, missing puzzle, future dates refused,
                            restore when completed today
  - session expiry        → idle and finished games are evicted; use keeps them alive
  - play-through          → selection, guesses, completion recorded for signed-in players
  - schedule_next_puzzle  → next free date + save
  - get_user_stats        → stats dict
"""

import random
import unittest
from datetime import date
from unittest.mock import MagicMock, patch

from filmections.game.game import (
    FINISHED_SESSION_TTL_SECONDS,
    SESSION_TTL_SECONDS,
    PuzzleNotFoundError,
    _sessions,
    get_game_state,
    get_user_stats,
    process_guess,
    schedule_next_puzzle,
    select_film,
    shuffle_board,
    start_game,
    validate_id,
)
from filmections.generation.puzzle_generator import generate_test_puzzle
from filmections.models.models import GameHistoryEntry, SavedPuzzle, UserStats

PUZZLE = generate_test_puzzle(random.Random(0))
USER_ID = "dddddddd-0000-0000-0000-000000000004"


def _saved(puzzle_date="2025-01-15"):
    return SavedPuzzle(
        id="puzzle-1",
        films=PUZZLE.films,
        groups=PUZZLE.groups,
        created_at=0,
        puzzle_date=puzzle_date,
    )


def _today():
    return date.today().isoformat()


def _guess_group(game_id, group):
    for film in group.films:
        select_film(game_id, film.id)
    return process_guess(game_id)


@patch("filmections.game.game._get_analytics", return_value=MagicMock())
@patch("filmections.game.game._get_tracker", return_value=MagicMock())
@patch("filmections.game.game.StatsStorage")
@patch("filmections.game.game.puzzle_storage_service")
class TestStartGame(unittest.TestCase):

    def test_fresh_session(self, mock_storage, mock_stats_cls, _tracker, _analytics):
        mock_storage.get_daily_puzzle.return_value = _saved(_today())

        game_id, state = start_game()

        self.assertTrue(validate_id(game_id))
        self.assertEqual(state["status"], "playing")
        self.assertEqual(len(state["films"]), 16)
        self.assertEqual(state["puzzleDate"], _today())
        mock_storage.get_daily_puzzle.assert_called_once_with(_today())
        mock_stats_cls.assert_not_called()

    def test_explicit_date(self, mock_storage, _stats_cls, _tracker, _analytics):
        mock_storage.get_daily_puzzle.return_value = _saved()

        _, state = start_game("2025-01-15")

        mock_storage.get_daily_puzzle.assert_called_once_with("2025-01-15")
        self.assertEqual(state["puzzleDate"], "2025-01-15")

    def test_missing_puzzle(self, mock_storage, _stats_cls, _tracker, _analytics):
        mock_storage.get_daily_puzzle.return_value = None

        with self.assertRaises(PuzzleNotFoundError):
            start_game("2024-02-29")

    def test_future_date_is_not_served(self, mock_storage, _stats_cls, _tracker, _analytics):
        mock_storage.get_daily_puzzle.return_value = _saved("2999-01-01")

        with self.assertRaises(PuzzleNotFoundError):
            start_game("2999-01-01")

        mock_storage.get_daily_puzzle.assert_not_called()

    def test_restores_game_completed_today(self, mock_storage, mock_stats_cls, _tracker, _analytics):
        mock_storage.get_daily_puzzle.return_value = _saved(_today())
        mock_stats_cls.return_value.get_stats.return_value = UserStats.from_history([
            GameHistoryEntry(date=_today(), won=True, mistakes=2, completed_at=100),
        ])

        _, state = start_game(user_id=USER_ID)

        self.assertEqual(state["status"], "won")
        self.assertEqual(state["mistakes"], 2)
        self.assertEqual(len(state["foundGroups"]), 4)
        self.assertEqual(state["films"], [])

    def test_completed_today_does_not_restore_other_dates(self, mock_storage, mock_stats_cls, _tracker, _analytics):
        mock_storage.get_daily_puzzle.return_value = _saved()
        mock_stats_cls.return_value.get_stats.return_value = UserStats.from_history([
            GameHistoryEntry(date=_today(), won=False, mistakes=4, completed_at=100),
        ])

        _, state = start_game("2025-01-15", user_id=USER_ID)

        self.assertEqual(state["status"], "playing")


@patch("filmections.game.game._get_analytics", return_value=MagicMock())
@patch("filmections.game.game._get_tracker")
@patch("filmections.game.game.StatsStorage")
@patch("filmections.game.game.puzzle_storage_service")
class TestPlayThrough(unittest.TestCase):

    def test_correct_guess(self, mock_storage, _stats_cls, _tracker, _analytics):
        mock_storage.get_daily_puzzle.return_value = _saved()
        game_id, _ = start_game("2025-01-15")

        state, result, one_away = _guess_group(game_id, PUZZLE.groups[0])

        self.assertEqual(result, "correct")
        self.assertFalse(one_away)
        self.assertEqual(state["foundGroups"][0]["id"], "test-yellow")
        self.assertEqual(len(state["films"]), 12)
        self.assertEqual(get_game_state(game_id)["selectedFilmIds"], [])

    def test_guess_without_selection_is_ignored(self, mock_storage, _stats_cls, _tracker, _analytics):
        mock_storage.get_daily_puzzle.return_value = _saved()
        game_id, _ = start_game("2025-01-15")

        _, result, _ = process_guess(game_id)

        self.assertEqual(result, "ignored")

    def test_win_records_completion(self, mock_storage, mock_stats_cls, mock_tracker, _analytics):
        mock_storage.get_daily_puzzle.return_value = _saved()
        mock_stats_cls.return_value.get_stats.return_value = UserStats()
        game_id, _ = start_game("2025-01-15", user_id=USER_ID)

        for group in PUZZLE.groups:
            state, result, _ = _guess_group(game_id, group)

        self.assertEqual(state["status"], "won")
        entry = mock_stats_cls.return_value.record_completion.call_args[0][0]
        self.assertEqual(entry.date, "2025-01-15")
        self.assertTrue(entry.won)
        self.assertEqual(entry.mistakes, 0)
        mock_tracker.return_value.save_game.assert_called_once()

    def test_failed_stats_write_is_logged(self, mock_storage, mock_stats_cls, _tracker, _analytics):
        mock_storage.get_daily_puzzle.return_value = _saved()
        mock_stats_cls.return_value.get_stats.return_value = UserStats()
        mock_stats_cls.return_value.record_completion.side_effect = RuntimeError("db down")
        game_id, _ = start_game("2025-01-15", user_id=USER_ID)

        with self.assertLogs("filmections.game.game", level="ERROR"):
            for group in PUZZLE.groups:
                state, _, _ = _guess_group(game_id, group)

        self.assertEqual(state["status"], "won")

    def test_shuffle_board(self, mock_storage, _stats_cls, _tracker, _analytics):
        mock_storage.get_daily_puzzle.return_value = _saved()
        game_id, before = start_game("2025-01-15")

        after = shuffle_board(game_id)

        self.assertEqual(
            sorted(f["id"] for f in after["films"]),
            sorted(f["id"] for f in before["films"]),
        )

    def test_unknown_game(self, _storage, _stats_cls, _tracker, _analytics):
        self.assertFalse(validate_id("missing"))
        with self.assertRaises(ValueError):
            get_game_state("missing")


@patch("filmections.game.game._clock")
@patch("filmections.game.game._get_analytics", return_value=MagicMock())
@patch("filmections.game.game._get_tracker", return_value=MagicMock())
@patch("filmections.game.game.StatsStorage")
@patch("filmections.game.game.puzzle_storage_service")
class TestSessionExpiry(unittest.TestCase):

    START = 1736899200.0

    def _start(self, mock_storage, mock_clock):
        mock_storage.get_daily_puzzle.return_value = _saved()
        mock_clock.return_value = self.START
        game_id, _ = start_game("2025-01-15")
        return game_id

    def test_idle_game_expires(self, mock_storage, _stats_cls, _tracker, _analytics, mock_clock):
        game_id = self._start(mock_storage, mock_clock)

        mock_clock.return_value = self.START + SESSION_TTL_SECONDS + 1

        self.assertFalse(validate_id(game_id))
        with self.assertRaises(ValueError):
            get_game_state(game_id)

    def test_activity_keeps_game_alive(self, mock_storage, _stats_cls, _tracker, _analytics, mock_clock):
        game_id = self._start(mock_storage, mock_clock)

        mock_clock.return_value = self.START + SESSION_TTL_SECONDS - 60
        get_game_state(game_id)
        mock_clock.return_value = self.START + 2 * SESSION_TTL_SECONDS - 120

        self.assertTrue(validate_id(game_id))

    def test_finished_game_expires_after_grace_period(self, mock_storage, _stats_cls, _tracker, _analytics, mock_clock):
        finished_id = self._start(mock_storage, mock_clock)
        playing_id = self._start(mock_storage, mock_clock)
        for group in PUZZLE.groups:
            _guess_group(finished_id, group)

        mock_clock.return_value = self.START + FINISHED_SESSION_TTL_SECONDS + 1

        self.assertFalse(validate_id(finished_id))
        self.assertTrue(validate_id(playing_id))

    def test_starting_a_game_evicts_expired_sessions(self, mock_storage, _stats_cls, _tracker, _analytics, mock_clock):
        stale_id = self._start(mock_storage, mock_clock)

        mock_clock.return_value = self.START + SESSION_TTL_SECONDS + 1
        fresh_id, _ = start_game("2025-01-15")

        self.assertNotIn(stale_id, _sessions)
        self.assertIn(fresh_id, _sessions)


class TestSchedulingAndStats(unittest.TestCase):

    @patch("filmections.game.game.puzzle_storage_service")
    def test_schedule_test_puzzle(self, mock_storage):
        mock_storage.get_daily_puzzle.return_value = None
        mock_storage.save_puzzle.return_value = "puzzle-2"

        puzzle_date, puzzle_id = schedule_next_puzzle(test=True)

        self.assertEqual(puzzle_date, _today())
        self.assertEqual(puzzle_id, "puzzle-2")
        self.assertEqual(mock_storage.save_puzzle.call_args[0][1], _today())

    @patch("filmections.game.game.StatsStorage")
    def test_get_user_stats(self, mock_stats_cls):
        mock_stats_cls.return_value.get_stats.return_value = UserStats.from_history([
            GameHistoryEntry(date="2025-01-15", won=True, mistakes=1, completed_at=1),
        ])

        stats = get_user_stats(USER_ID)

        mock_stats_cls.assert_called_once_with(USER_ID)
        self.assertEqual(stats["gamesPlayed"], 1)
        self.assertEqual(stats["currentStreak"], 1)


if __name__ == "__main__":
    unittest.main()
