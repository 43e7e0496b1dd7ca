"""
Puzzle Scheduler for the Filmections game.

Maps calendar dates to stored puzzles: one puzzle per day. Layered over a puzzle
storage object (anything with get_daily_puzzle(date), normally the
puzzle_storage_service module) and an optional stats storage object (anything
with get_stats(), normally a StatsStorage).

All dates are ISO strings (YYYY-MM-DD).
"""

import logging
from datetime import date, timedelta

logger = logging.getLogger(__name__)

# Hard cap on how far ahead get_next_available_date() looks.
MAX_LOOKAHEAD_DAYS = 365


class NoAvailableDateError(Exception):
    """Raised when every date in the lookahead window already has a puzzle."""
    pass


class PuzzleScheduler:
    """
    Args:
        storage: Puzzle storage exposing get_daily_puzzle(date).
        stats:   Stats storage exposing get_stats(), or None for anonymous players.
        today:   Callable returning today's datetime.date; injectable for tests.
    """

    def __init__(self, storage, stats=None, today=date.today) -> None:
        self.storage = storage
        self.stats = stats
        self._today = today

    def today(self) -> str:
        return self._today().isoformat()

    def get_puzzle_for_date(self, puzzle_date: str):
        """Returns the puzzle stored for a date, or None. Absence is not an error."""
        return self.storage.get_daily_puzzle(puzzle_date)

    def get_todays_puzzle(self):
        return self.get_puzzle_for_date(self.today())

    def has_user_completed_today(self) -> bool:
        """
        True when the most recent date in the user's history is today. Uses the
        maximum date rather than list order, so out-of-order history is fine.
        """
        if self.stats is None:
            return False
        history = self.stats.get_stats().game_history
        if not history:
            return False
        return max(entry.date for entry in history) == self.today()

    def get_next_available_date(self) -> str:
        """
        Returns the first date, starting today, with no stored puzzle.

        Raises:
            NoAvailableDateError: All MAX_LOOKAHEAD_DAYS dates are taken.
        """
        start = self._today()
        for offset in range(MAX_LOOKAHEAD_DAYS):
            candidate = (start + timedelta(days=offset)).isoformat()
            if self.storage.get_daily_puzzle(candidate) is None:
                logger.debug("Next available puzzle date is %s", candidate)
                return candidate

        raise NoAvailableDateError(
            f"No available dates found within next {MAX_LOOKAHEAD_DAYS} days"
        )
