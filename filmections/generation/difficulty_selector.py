"""
Difficulty Selector — Step 2 of the Filmections puzzle generation pipeline.

Ranks every candidate group by difficulty score, splits the ranking into four
quartiles (one per colour tier), then greedily picks one candidate per tier so
that no film is used twice.

Returning fewer than four groups is the failure signal; the puzzle generator
retries with a fresh pool in that case.
"""

import logging
import random
from typing import Dict, List

from ..models.models import NUM_GROUPS, TIERS, PotentialGroup, SelectedGroup

logger = logging.getLogger(__name__)


def quartile_for_rank(rank: int, total: int) -> int:
    """Quartile index (0 = easiest) for a 0-based rank among total candidates."""
    return min(rank * NUM_GROUPS // total, NUM_GROUPS - 1)


def partition_into_tiers(candidates: List[PotentialGroup]) -> Dict[int, List[PotentialGroup]]:
    """
    Sorts candidates ascending by difficulty_score and buckets them by quartile.
    Quartiles are computed across all categories so the tiers are calibrated
    globally. Python's sort is stable, so equal scores keep input order.
    """
    ranked = sorted(candidates, key=lambda c: c.difficulty_score)
    tiers: Dict[int, List[PotentialGroup]] = {i: [] for i in range(NUM_GROUPS)}
    for rank, candidate in enumerate(ranked):
        tiers[quartile_for_rank(rank, len(ranked))].append(candidate)
    return tiers


def select_non_overlapping_groups(
    candidates: List[PotentialGroup], rng=random
) -> List[SelectedGroup]:
    """
    Selects one candidate per tier, easiest tier first, with no shared films.

    Args:
        candidates: Every candidate group, recent connections already removed.
        rng:        Random source with a shuffle() method.

    Returns:
        Up to four SelectedGroup entries in tier order. Stops at the first tier
        that has no non-overlapping candidate, so a short list means failure.
    """
    if len(candidates) < NUM_GROUPS:
        logger.debug("Only %d candidates; need at least %d", len(candidates), NUM_GROUPS)
        return []

    tiers = partition_into_tiers(candidates)
    for bucket in tiers.values():
        rng.shuffle(bucket)

    selected: List[SelectedGroup] = []
    used_film_ids = set()

    for quartile, (difficulty, color) in enumerate(TIERS):
        choice = next(
            (c for c in tiers[quartile] if used_film_ids.isdisjoint(c.film_ids)),
            None,
        )
        if choice is None:
            logger.debug(
                "No non-overlapping %s candidate among %d; selected %d so far",
                color.value, len(tiers[quartile]), len(selected),
            )
            return selected

        used_film_ids.update(choice.film_ids)
        selected.append(SelectedGroup(candidate=choice, difficulty=difficulty, color=color))

    return selected
