"""
Game session state machine for the Filmections game.

The transitions in this module are pure: each takes a SessionState and returns a
new one. GameSession wraps them for a live play session and performs the side
effects (clearing transient flags after a delay, updating recent content,
emitting analytics, notifying the completion callback).

States:
    playing → playing   incorrect (not final) or duplicate guess
    playing → won       fourth group found
    playing → lost      fourth mistake
won and lost are terminal; only initialize(), restore_completed() or reset()
leave them.

Malformed calls (submitting without four selections, selecting after the game
ended, selecting a fifth film) are silent no-ops.
"""

import enum
import logging
import random
import threading
from dataclasses import dataclass, replace
from typing import Iterable, Optional, Tuple

from ..models.models import (
    GROUP_SIZE,
    MAX_MISTAKES,
    NUM_GROUPS,
    Film,
    GameStatus,
    Group,
    SessionState,
)

logger = logging.getLogger(__name__)

MAX_SELECTIONS = GROUP_SIZE

ALREADY_TRIED = "Already tried!"
ONE_AWAY = "One away!"

NOTIFICATION_SECONDS = 2.0
SHAKE_SECONDS = 0.5


class GuessResult(enum.Enum):
    IGNORED = "ignored"
    DUPLICATE = "duplicate"
    CORRECT = "correct"
    INCORRECT = "incorrect"


@dataclass(frozen=True)
class GuessOutcome:
    """Result of submit_guess(): the next state plus what happened."""

    state: SessionState
    result: GuessResult
    one_away: bool = False
    group: Optional[Group] = None


# ---------------------------------------------------------------------------
# Pure transitions
# ---------------------------------------------------------------------------

def initial_state() -> SessionState:
    return SessionState()


def initialize(
    films: Iterable[Film],
    groups: Iterable[Group],
    puzzle_date: Optional[str] = None,
    rng=random,
) -> SessionState:
    """Fresh playing session with the films shuffled."""
    shuffled = list(films)
    rng.shuffle(shuffled)
    return SessionState(
        films=tuple(shuffled),
        groups=tuple(groups),
        puzzle_date=puzzle_date,
    )


def restore_completed(
    groups: Iterable[Group],
    won: bool,
    mistakes: int,
    puzzle_date: Optional[str] = None,
) -> SessionState:
    """
    Terminal session for a puzzle the player already finished. Every group is
    shown as found. A lost game always carries MAX_MISTAKES.
    """
    groups = tuple(groups)
    return SessionState(
        films=(),
        groups=groups,
        found_groups=groups,
        mistakes=min(max(mistakes, 0), MAX_MISTAKES) if won else MAX_MISTAKES,
        status=GameStatus.WON if won else GameStatus.LOST,
        puzzle_date=puzzle_date,
    )


def select_film(state: SessionState, film_id: int) -> SessionState:
    """Toggles a film in the selection. Ignored once the game is over."""
    if state.status != GameStatus.PLAYING:
        return state

    if film_id in state.selected_film_ids:
        return replace(
            state,
            selected_film_ids=tuple(i for i in state.selected_film_ids if i != film_id),
        )

    if len(state.selected_film_ids) >= MAX_SELECTIONS:
        return state
    if not any(film.id == film_id for film in state.films):
        return state
    return replace(state, selected_film_ids=state.selected_film_ids + (film_id,))


def deselect_all(state: SessionState) -> SessionState:
    return replace(state, selected_film_ids=())


def canonical_guess(film_ids: Iterable[int]) -> Tuple[int, ...]:
    return tuple(sorted(film_ids))


def find_matching_group(guess: Tuple[int, ...], groups: Iterable[Group]) -> Optional[Group]:
    """First group (in generation order) whose films are exactly the guess."""
    return next((group for group in groups if group.film_ids == guess), None)


def find_one_away_group(guess: Tuple[int, ...], groups: Iterable[Group]) -> Optional[Group]:
    """First group sharing exactly GROUP_SIZE - 1 films with the guess."""
    guess_set = set(guess)
    return next(
        (g for g in groups if len(guess_set.intersection(g.film_ids)) == GROUP_SIZE - 1),
        None,
    )


def submit_guess(state: SessionState) -> GuessOutcome:
    """
    Evaluates the current selection.

    A repeat of an earlier guess only sets the "Already tried!" notification;
    this check runs before matching, so a duplicate never records a group.
    """
    if state.status != GameStatus.PLAYING or len(state.selected_film_ids) != MAX_SELECTIONS:
        return GuessOutcome(state=state, result=GuessResult.IGNORED)

    guess = canonical_guess(state.selected_film_ids)

    if guess in state.previous_guesses:
        return GuessOutcome(
            state=replace(state, notification=ALREADY_TRIED),
            result=GuessResult.DUPLICATE,
        )

    previous_guesses = state.previous_guesses + (guess,)
    matched = find_matching_group(guess, state.groups)

    if matched is not None:
        found_groups = state.found_groups + (matched,)
        matched_ids = set(matched.film_ids)
        return GuessOutcome(
            state=replace(
                state,
                found_groups=found_groups,
                films=tuple(f for f in state.films if f.id not in matched_ids),
                selected_film_ids=(),
                previous_guesses=previous_guesses,
                status=GameStatus.WON if len(found_groups) == NUM_GROUPS else GameStatus.PLAYING,
            ),
            result=GuessResult.CORRECT,
            group=matched,
        )

    one_away = find_one_away_group(guess, state.groups) is not None
    mistakes = state.mistakes + 1
    next_state = replace(
        state,
        mistakes=mistakes,
        previous_guesses=previous_guesses,
        is_shaking=True,
        notification=ONE_AWAY if one_away else state.notification,
    )
    if mistakes >= MAX_MISTAKES:
        # Reveal the answers.
        next_state = replace(
            next_state,
            status=GameStatus.LOST,
            found_groups=state.groups,
            films=(),
            selected_film_ids=(),
        )
    return GuessOutcome(state=next_state, result=GuessResult.INCORRECT, one_away=one_away)


def shuffle_films(state: SessionState, rng=random) -> SessionState:
    """Reorders the remaining films only; selection and status are untouched."""
    films = list(state.films)
    rng.shuffle(films)
    return replace(state, films=tuple(films))


def clear_notification(state: SessionState) -> SessionState:
    return replace(state, notification=None)


def clear_shake(state: SessionState) -> SessionState:
    return replace(state, is_shaking=False)


# ---------------------------------------------------------------------------
# Live session
# ---------------------------------------------------------------------------

def start_timer(delay: float, callback) -> None:
    """Default timer backend: a daemon threading.Timer."""
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()


class GameSession:
    """
    Owns one player's session state and its side effects.

    Every state change, including timer callbacks, runs under a lock so it reads,
    computes and applies the next state without interleaving. Analytics, the
    recent-content tracker and on_complete are called after the lock is
    released, with the state they were computed from.

    Transient flags (notification, is_shaking) are cleared by deferred callbacks.
    Each flag has a generation counter that is bumped whenever the flag is set;
    a callback only clears the flag if the counter still matches the value it
    captured, so a stale timer cannot clear a newer notification.

    Args:
        tracker:     RecentContentTracker told about every completed puzzle.
        analytics:   AnalyticsSink receiving gameplay events.
        on_complete: Called with the terminal SessionState after a win or loss.
        timer:       Callable (delay_seconds, callback) scheduling a deferred call.
        rng:         Random source for shuffling.
    """

    def __init__(self, tracker=None, analytics=None, on_complete=None, timer=start_timer, rng=random):
        self.tracker = tracker
        self.analytics = analytics
        self.on_complete = on_complete
        self._timer = timer
        self._rng = rng
        self._lock = threading.RLock()
        self._state = initial_state()
        self._notification_generation = 0
        self._shake_generation = 0

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    # --- Lifecycle -------------------------------------------------------

    def initialize(self, films, groups, puzzle_date: Optional[str] = None) -> SessionState:
        with self._lock:
            self._invalidate_timers()
            self._state = initialize(films, groups, puzzle_date, self._rng)
            logger.info("Initialized session for puzzle date %s", puzzle_date)
            return self._state

    def restore_completed(self, groups, won: bool, mistakes: int, puzzle_date: Optional[str] = None) -> SessionState:
        with self._lock:
            self._invalidate_timers()
            self._state = restore_completed(groups, won, mistakes, puzzle_date)
            logger.info("Restored completed session for %s (won=%s)", puzzle_date, won)
            return self._state

    def reset(self) -> SessionState:
        with self._lock:
            self._invalidate_timers()
            self._state = initial_state()
            return self._state

    # --- Player actions --------------------------------------------------

    def select_film(self, film_id: int) -> SessionState:
        with self._lock:
            self._state = select_film(self._state, film_id)
            return self._state

    def deselect_all(self) -> SessionState:
        with self._lock:
            self._state = deselect_all(self._state)
            return self._state

    def shuffle_films(self) -> SessionState:
        with self._lock:
            self._state = shuffle_films(self._state, self._rng)
            state = self._state
        self._track("films_shuffled")
        return state

    def submit_guess(self) -> GuessOutcome:
        with self._lock:
            previous = self._state
            outcome = submit_guess(previous)
            self._state = outcome.state

            if outcome.result == GuessResult.IGNORED:
                return outcome

            if outcome.result == GuessResult.DUPLICATE:
                logger.debug("Duplicate guess %s", outcome.state.selected_film_ids)
                self._schedule_notification_clear()
                return outcome

            if outcome.one_away:
                self._schedule_notification_clear()
            if outcome.result == GuessResult.INCORRECT:
                self._schedule_shake_clear()

        # Side effects run after the lock is released.
        self._report_guess(previous, outcome)
        return outcome

    # --- Internals -------------------------------------------------------

    def _report_guess(self, previous: SessionState, outcome: GuessOutcome) -> None:
        self._track(
            "guess_submitted",
            correct=outcome.result == GuessResult.CORRECT,
            mistakes=outcome.state.mistakes,
            wasOneAway=outcome.one_away,
        )
        if outcome.group is not None:
            self._track(
                "group_found",
                groupIndex=len(outcome.state.found_groups) - 1,
                difficulty=outcome.group.difficulty.value,
                mistakesSoFar=outcome.state.mistakes,
            )

        if outcome.state.status != GameStatus.PLAYING:
            self._complete(previous, outcome.state)

    def _complete(self, previous: SessionState, final: SessionState) -> None:
        logger.info(
            "Game %s for %s with %d mistakes",
            final.status.value, final.puzzle_date, final.mistakes,
        )
        if final.status == GameStatus.WON:
            self._track("game_won", mistakes=final.mistakes, groups=NUM_GROUPS)
        else:
            self._track("game_lost", mistakes=final.mistakes, groupsFound=len(previous.found_groups))

        if self.tracker is not None:
            self.tracker.save_game(
                [film.id for group in final.groups for film in group.films],
                [group.connection for group in final.groups],
            )
        if self.on_complete is not None:
            self.on_complete(final)

    def _track(self, event: str, **properties) -> None:
        if self.analytics is None:
            return
        try:
            self.analytics.track(event, **properties)
        except Exception as e:
            # Analytics must never affect game state.
            logger.warning("Analytics sink failed for %s: %s", event, e)

    def _invalidate_timers(self) -> None:
        self._notification_generation += 1
        self._shake_generation += 1

    def _schedule_notification_clear(self) -> None:
        self._notification_generation += 1
        generation = self._notification_generation

        def clear():
            with self._lock:
                if generation == self._notification_generation:
                    self._state = clear_notification(self._state)

        self._timer(NOTIFICATION_SECONDS, clear)

    def _schedule_shake_clear(self) -> None:
        self._shake_generation += 1
        generation = self._shake_generation

        def clear():
            with self._lock:
                if generation == self._shake_generation:
                    self._state = clear_shake(self._state)

        self._timer(SHAKE_SECONDS, clear)
