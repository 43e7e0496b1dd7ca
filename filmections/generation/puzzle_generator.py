"""
Puzzle Generator — composes the Filmections puzzle generation pipeline.

Each attempt runs the full pipeline from a fresh metadata fetch:

  Step 1: Pool       — fetch 150 enriched films, drop recently used ones
                       (unless that leaves fewer than 100).
  Step 2: Mine       — candidate_miner.mine_all_candidates() across all categories,
                       then drop connections used recently.
  Step 3: Select     — difficulty_selector picks one disjoint group per tier.
  Step 4: Assemble   — assign ids, flatten and shuffle the 16 films.

If Step 3 returns fewer than four groups the attempt is discarded and the
pipeline starts again, up to MAX_ATTEMPTS times.

Usage:
    from filmections.generation.puzzle_generator import generate_puzzle

    puzzle = generate_puzzle()
    # Returns: Puzzle(groups=(Group x4), films=(Film x16))
    # Raises PuzzleGenerationError when every attempt fails selection, and
    # MetadataSourceError when the metadata source itself fails.
"""

import logging
import random
from typing import Callable, List, Optional, Tuple

from ..models.models import (
    NUM_GROUPS,
    TIERS,
    EnrichedFilm,
    Film,
    Group,
    Puzzle,
    SelectedGroup,
)
from ..services.recent_content import RecentContentTracker
from .candidate_miner import mine_all_candidates
from .difficulty_selector import select_non_overlapping_groups

logger = logging.getLogger(__name__)

POOL_SIZE = 150
# Recent-film exclusion is skipped when it would shrink the pool below this.
MIN_POOL_SIZE = 100
MAX_ATTEMPTS = 25


class PuzzleGenerationError(Exception):
    """Raised when no attempt produced four disjoint groups."""
    pass


def shuffle_films(films, rng=random) -> List[Film]:
    """Returns a uniformly shuffled copy (random.shuffle is a Fisher–Yates shuffle)."""
    shuffled = list(films)
    rng.shuffle(shuffled)
    return shuffled


def _default_fetch_pool(size: int) -> List[EnrichedFilm]:
    # Deferred so the generator can be imported without requests configured.
    from ..services.tmdb_service import get_random_movie_pool

    return get_random_movie_pool(size)


def _exclude_recent(pool: List[EnrichedFilm], recent_film_ids: set) -> List[EnrichedFilm]:
    filtered = [film for film in pool if film.id not in recent_film_ids]
    if len(filtered) < MIN_POOL_SIZE:
        logger.info(
            "Excluding %d recent films would leave %d (< %d); using the full pool",
            len(pool) - len(filtered), len(filtered), MIN_POOL_SIZE,
        )
        return pool
    return filtered


def _to_group(selected: SelectedGroup, index: int) -> Group:
    candidate = selected.candidate
    return Group(
        id=f"{candidate.category.value}-{index}",
        films=tuple(film.to_film() for film in candidate.films),
        connection=candidate.connection,
        difficulty=selected.difficulty,
        color=selected.color,
    )


def _assemble(groups: List[Group], rng) -> Puzzle:
    films = [film for group in groups for film in group.films]
    return Puzzle(groups=tuple(groups), films=tuple(shuffle_films(films, rng)))


def _run_attempt(
    fetch_pool: Callable[[int], List[EnrichedFilm]],
    tracker: Optional[RecentContentTracker],
    rng,
) -> List[SelectedGroup]:
    recent_film_ids = tracker.get_recent_film_ids() if tracker else set()
    recent_connections = tracker.get_recent_connections() if tracker else set()

    pool = _exclude_recent(fetch_pool(POOL_SIZE), recent_film_ids)

    mined = mine_all_candidates(pool, rng)
    candidates = [
        candidate
        for category_candidates in mined.values()
        for candidate in category_candidates
        if candidate.connection not in recent_connections
    ]
    logger.debug("Attempt has %d candidates after recent-connection filter", len(candidates))

    return select_non_overlapping_groups(candidates, rng)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def generate_puzzle(
    fetch_pool: Optional[Callable[[int], List[EnrichedFilm]]] = None,
    tracker: Optional[RecentContentTracker] = None,
    rng=random,
    max_attempts: int = MAX_ATTEMPTS,
) -> Puzzle:
    """
    Generates a complete four-group puzzle.

    Args:
        fetch_pool:   Returns n enriched films. Defaults to the TMDB service.
        tracker:      Recent content to steer away from. None disables exclusion.
        rng:          Random source (random module or a random.Random instance).
        max_attempts: How many fresh pools to try before giving up.

    Returns:
        Puzzle whose groups are in tier order (easy → hardest) and whose 16
        films are shuffled.

    Raises:
        PuzzleGenerationError: Every attempt fell short of four disjoint groups.
        MetadataSourceError:   The metadata fetch failed (propagated unchanged).
    """
    fetch_pool = fetch_pool or _default_fetch_pool

    for attempt in range(1, max_attempts + 1):
        selected = _run_attempt(fetch_pool, tracker, rng)
        if len(selected) == NUM_GROUPS:
            groups = [_to_group(s, index) for index, s in enumerate(selected)]
            logger.info(
                "Generated puzzle on attempt %d: %s",
                attempt, [g.connection for g in groups],
            )
            return _assemble(groups, rng)

        logger.warning(
            "Only found %d groups on attempt %d/%d, retrying puzzle generation...",
            len(selected), attempt, max_attempts,
        )

    raise PuzzleGenerationError(
        f"Could not find {NUM_GROUPS} non-overlapping groups in {max_attempts} attempts."
    )


def generate_test_puzzle(rng=random) -> Puzzle:
    """
    Returns a fixed synthetic puzzle (one group per tier, film ids 1–16) for
    offline development. Only the film order is random.
    """
    groups = []
    for tier_index, (difficulty, color) in enumerate(TIERS):
        name = color.value.capitalize()
        first_id = tier_index * 4 + 1
        groups.append(Group(
            id=f"test-{color.value}",
            films=tuple(
                Film(id=first_id + i, title=f"{name} Film {i + 1}", year=2020 + i)
                for i in range(4)
            ),
            connection=f"{name} Group ({difficulty.value.capitalize()})",
            difficulty=difficulty,
            color=color,
        ))
    return _assemble(groups, rng)


def schedule_puzzle(scheduler, storage, test: bool = False, **generate_kwargs) -> Tuple[str, str]:
    """
    Generates a puzzle and saves it on the next free date.

    Args:
        scheduler:  PuzzleScheduler used to find the date.
        storage:    Puzzle storage exposing save_puzzle(puzzle, date).
        test:       Save the synthetic test puzzle instead of mining one.

    Returns:
        (puzzle_date, puzzle_id)
    """
    puzzle_date = scheduler.get_next_available_date()
    puzzle = generate_test_puzzle() if test else generate_puzzle(**generate_kwargs)
    puzzle_id = storage.save_puzzle(puzzle, puzzle_date)
    logger.info("Scheduled puzzle %s for %s (test=%s)", puzzle_id, puzzle_date, test)
    return puzzle_date, puzzle_id


# ---------------------------------------------------------------------------
# Manual end-to-end run
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import argparse
    import json
    import sys

    from dotenv import load_dotenv

    # Run from project root: python -m filmections.generation.puzzle_generator
    load_dotenv()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    parser = argparse.ArgumentParser(description="Generate a Filmections puzzle.")
    parser.add_argument("--test", action="store_true", help="use the synthetic test puzzle")
    parser.add_argument("--schedule", action="store_true", help="save it on the next free date")
    args = parser.parse_args()

    if args.schedule:
        from ..services import puzzle_storage_service
        from ..services.puzzle_scheduler import PuzzleScheduler

        scheduler = PuzzleScheduler(puzzle_storage_service)
        generate_kwargs = {} if args.test else {"tracker": RecentContentTracker()}
        puzzle_date, puzzle_id = schedule_puzzle(
            scheduler, puzzle_storage_service, test=args.test, **generate_kwargs
        )
        print(f"Scheduled puzzle {puzzle_id} for {puzzle_date}")
        sys.exit(0)

    puzzle = generate_test_puzzle() if args.test else generate_puzzle(tracker=RecentContentTracker())

    for group in puzzle.groups:
        print(f"\n  [{group.color.value.upper()}] {group.connection}")
        print(f"  Films: {', '.join(f.title for f in group.films)}")

    print("\n" + json.dumps(puzzle.to_dict(), indent=2))
