"""
Game service module for the Filmections game API.

This module connects the routes to the session state machine, the puzzle
scheduler and the storage services. Live sessions are held in memory, keyed by a
generated game id; completed games are recorded in the player's stats when the
player is signed in.

Functions:
- validate_id(game_id): Checks whether a session exists.
- start_game(puzzle_date, user_id): Starts (or restores) a session for a scheduled puzzle.
- get_game_state(game_id): Returns the state dict of a session.
- select_film(game_id, film_id): Toggles a film in the selection.
- deselect_all(game_id): Clears the selection.
- process_guess(game_id): Submits the current selection as a guess.
- shuffle_board(game_id): Reshuffles the remaining films.
- schedule_next_puzzle(test): Generates a puzzle and saves it on the next free date.
- get_user_stats(user_id): Returns a signed-in player's stats.
"""

import logging
import threading
import time
import uuid
from typing import Optional, Tuple

from ..generation.puzzle_generator import schedule_puzzle
from ..models.models import GameHistoryEntry, GameStatus
from ..services import puzzle_storage_service
from ..services.analytics import AnalyticsSink
from ..services.puzzle_scheduler import PuzzleScheduler
from ..services.recent_content import RecentContentTracker
from ..services.stats_service import StatsStorage
from .session import GameSession

logger = logging.getLogger(__name__)


class PuzzleNotFoundError(Exception):
    """Raised when no puzzle is scheduled for the requested date."""
    pass


# In-memory session registry; sessions are per-play and never persisted.
# Entries expire SESSION_TTL_SECONDS after their last use, or
# FINISHED_SESSION_TTL_SECONDS once the game is over.
SESSION_TTL_SECONDS = 6 * 60 * 60
FINISHED_SESSION_TTL_SECONDS = 15 * 60

_sessions = {}
_sessions_lock = threading.Lock()
_clock = time.time

_tracker = None
_analytics = None


class _LiveSession:
    __slots__ = ("session", "last_access")

    def __init__(self, session: GameSession, last_access: float) -> None:
        self.session = session
        self.last_access = last_access

    def is_expired(self, now: float) -> bool:
        finished = self.session.state.status != GameStatus.PLAYING
        ttl = FINISHED_SESSION_TTL_SECONDS if finished else SESSION_TTL_SECONDS
        return now - self.last_access > ttl


def _get_tracker() -> RecentContentTracker:
    global _tracker
    if _tracker is None:
        _tracker = RecentContentTracker()
    return _tracker


def _get_analytics() -> AnalyticsSink:
    global _analytics
    if _analytics is None:
        _analytics = AnalyticsSink()
    return _analytics


def _stats_for(user_id):
    return StatsStorage(user_id) if user_id else None


def _lookup(game_id) -> Optional[GameSession]:
    """Returns the live session and marks it used, dropping it if it has expired."""
    now = _clock()
    with _sessions_lock:
        entry = _sessions.get(game_id)
        if entry is None:
            return None
        if entry.is_expired(now):
            del _sessions[game_id]
            logger.info("Game %s expired", game_id)
            return None
        entry.last_access = now
        return entry.session


def _sweep_expired() -> None:
    now = _clock()
    with _sessions_lock:
        expired = [game_id for game_id, entry in _sessions.items() if entry.is_expired(now)]
        for game_id in expired:
            del _sessions[game_id]
    if expired:
        logger.info("Evicted %d expired games", len(expired))


def _get_session(game_id: str) -> GameSession:
    session = _lookup(game_id)
    if session is None:
        raise ValueError("No game found with the provided ID.")
    return session


def _completion_recorder(user_id):
    """Builds the on_complete callback that writes the result to the player's stats."""
    if not user_id:
        return None

    def record(final_state):
        entry = GameHistoryEntry(
            date=final_state.puzzle_date,
            won=final_state.status == GameStatus.WON,
            mistakes=final_state.mistakes,
            completed_at=int(time.time() * 1000),
        )
        try:
            StatsStorage(user_id).record_completion(entry)
        except Exception as e:
            # The game already finished; losing the stats row must not undo that.
            logger.error("Failed to record completion for user %s: %s", user_id, e)

    return record


def validate_id(game_id) -> bool:
    """
    Validates if a game ID belongs to a live session.

    :param game_id: The ID of the game to validate.
    :return: True if the session exists and has not expired, False otherwise.
    """
    return _lookup(game_id) is not None


def start_game(puzzle_date: Optional[str] = None, user_id: Optional[str] = None) -> Tuple[str, dict]:
    """
    Creates a session for the puzzle scheduled on puzzle_date (default today).

    If the signed-in player already finished today's puzzle, the session is
    restored in its completed state instead of starting fresh.

    :return: (game_id, state dict)
    :raises PuzzleNotFoundError: No puzzle is scheduled for that date, or the
                                 date is still in the future.
    """
    scheduler = PuzzleScheduler(puzzle_storage_service, _stats_for(user_id))
    today = scheduler.today()
    puzzle_date = puzzle_date or today
    if puzzle_date > today:
        raise PuzzleNotFoundError(f"No puzzle available for {puzzle_date}.")

    saved = scheduler.get_puzzle_for_date(puzzle_date)
    if saved is None:
        raise PuzzleNotFoundError(f"No puzzle scheduled for {puzzle_date}.")

    session = GameSession(
        tracker=_get_tracker(),
        analytics=_get_analytics(),
        on_complete=_completion_recorder(user_id),
    )

    if puzzle_date == today and scheduler.has_user_completed_today():
        history = scheduler.stats.get_stats().game_history
        latest = max(
            (e for e in history if e.date == puzzle_date),
            key=lambda e: e.completed_at,
        )
        session.restore_completed(saved.groups, latest.won, latest.mistakes, puzzle_date)
    else:
        session.initialize(saved.films, saved.groups, puzzle_date)

    _sweep_expired()
    game_id = str(uuid.uuid4())
    with _sessions_lock:
        _sessions[game_id] = _LiveSession(session, _clock())

    logger.info("Started game %s for %s (user_id=%s)", game_id, puzzle_date, user_id)
    return game_id, session.state.to_state()


def get_game_state(game_id: str) -> dict:
    """
    Retrieves the current state for the specified game ID.

    :raises ValueError: If no session exists with that ID.
    """
    return _get_session(game_id).state.to_state()


def select_film(game_id: str, film_id: int) -> dict:
    return _get_session(game_id).select_film(film_id).to_state()


def deselect_all(game_id: str) -> dict:
    return _get_session(game_id).deselect_all().to_state()


def process_guess(game_id: str) -> Tuple[dict, str, bool]:
    """
    Submits the session's current selection.

    :return: A tuple of (state dict, result, one_away) where result is one of
             "ignored", "duplicate", "correct" or "incorrect".
    """
    outcome = _get_session(game_id).submit_guess()
    return outcome.state.to_state(), outcome.result.value, outcome.one_away


def shuffle_board(game_id: str) -> dict:
    return _get_session(game_id).shuffle_films().to_state()


def schedule_next_puzzle(test: bool = False) -> Tuple[str, str]:
    """
    Generates a puzzle (or the synthetic test puzzle) and stores it on the next
    free date.

    :return: (puzzle_date, puzzle_id)
    """
    scheduler = PuzzleScheduler(puzzle_storage_service)
    generate_kwargs = {} if test else {"tracker": _get_tracker()}
    return schedule_puzzle(scheduler, puzzle_storage_service, test=test, **generate_kwargs)


def get_user_stats(user_id: str) -> dict:
    return StatsStorage(user_id).get_stats().to_dict()
