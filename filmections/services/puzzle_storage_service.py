"""
Puzzle Storage Service for the Filmections game.

Persists finished puzzles in the Supabase `daily_puzzles` table, one row per
calendar date:

    id (uuid) | puzzle_date (date, unique) | films (jsonb) | groups (jsonb) | created_at (bigint ms)

The puzzle scheduler reads through this module; the admin scheduling route and
the generator runner write through it. The module itself is passed around as
the scheduler's storage object, so every function here is part of that
interface.

Public API
----------
get_daily_puzzle(date)       → SavedPuzzle | None  - puzzle scheduled for an ISO date
save_puzzle(puzzle, date)    → str                 - insert a puzzle for a date, return id
get_puzzle(puzzle_id)        → SavedPuzzle | None
list_puzzles()               → list[SavedPuzzle]   - newest date first
update_puzzle(id, patch)     → SavedPuzzle | None
delete_puzzle(puzzle_id)     → None
"""

import logging
import os
import time
from typing import List, Optional

from ..models.models import Puzzle, SavedPuzzle

logger = logging.getLogger(__name__)

TABLE = "daily_puzzles"

# Patchable columns; anything else in an update patch is rejected.
_UPDATABLE_FIELDS = {"films", "groups", "puzzleDate"}


# ---------------------------------------------------------------------------
# Supabase client — lazy singleton.
# Tests mock _get_client() directly so the real import never runs in CI.
# ---------------------------------------------------------------------------
_supabase = None


def _get_client():
    """Returns the shared Supabase client, creating it on first call."""
    global _supabase
    if _supabase is None:
        try:
            from supabase import create_client
        except ImportError:
            raise RuntimeError(
                "supabase package is not installed. "
                "Run: pip install 'supabase>=2.0.0'"
            )
        url = os.getenv("SUPABASE_URL")
        key = os.getenv("SUPABASE_KEY")
        if not url or not key:
            raise RuntimeError(
                "SUPABASE_URL and SUPABASE_KEY environment variables must be set. "
                "Add them to .env (use .env.example as a template)."
            )
        _supabase = create_client(url, key)
    return _supabase


def _row_to_saved_puzzle(row: dict) -> SavedPuzzle:
    """Transforms a raw snake_case row into a SavedPuzzle."""
    return SavedPuzzle.from_dict({
        "id":         row["id"],
        "films":      row.get("films") or [],
        "groups":     row.get("groups") or [],
        "createdAt":  row.get("created_at") or 0,
        "puzzleDate": row.get("puzzle_date"),
    })


def _fetch_one(column: str, value: str) -> Optional[SavedPuzzle]:
    supabase = _get_client()
    result = (
        supabase.table(TABLE)
        .select("*")
        .eq(column, value)
        .limit(1)
        .execute()
    )
    return _row_to_saved_puzzle(result.data[0]) if result.data else None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def get_daily_puzzle(puzzle_date: str) -> Optional[SavedPuzzle]:
    """Returns the puzzle scheduled for an ISO date (YYYY-MM-DD), or None."""
    return _fetch_one("puzzle_date", puzzle_date)


def save_puzzle(puzzle: Puzzle, puzzle_date: str) -> str:
    """
    Inserts a finished puzzle for the given date.

    Args:
        puzzle:      The generated puzzle (groups + shuffled films).
        puzzle_date: ISO date the puzzle is scheduled for.

    Returns:
        str: UUID of the new daily_puzzles row.

    Raises:
        ValueError: The puzzle does not have four groups.
    """
    if len(puzzle.groups) != 4:
        raise ValueError(f"A puzzle needs exactly 4 groups, got {len(puzzle.groups)}.")

    data = puzzle.to_dict()
    supabase = _get_client()
    result = (
        supabase.table(TABLE)
        .insert({
            "puzzle_date": puzzle_date,
            "films":       data["films"],
            "groups":      data["groups"],
            "created_at":  int(time.time() * 1000),
        })
        .execute()
    )
    puzzle_id: str = result.data[0]["id"]
    logger.info("Saved puzzle %s for %s", puzzle_id, puzzle_date)
    return puzzle_id


def get_puzzle(puzzle_id: str) -> Optional[SavedPuzzle]:
    return _fetch_one("id", puzzle_id)


def list_puzzles() -> List[SavedPuzzle]:
    """Returns every stored puzzle, newest scheduled date first."""
    supabase = _get_client()
    result = (
        supabase.table(TABLE)
        .select("*")
        .order("puzzle_date", desc=True)
        .execute()
    )
    return [_row_to_saved_puzzle(row) for row in result.data]


def update_puzzle(puzzle_id: str, patch: dict) -> Optional[SavedPuzzle]:
    """
    Applies a partial update (camelCase keys: films, groups, puzzleDate).

    Raises:
        ValueError: The patch is empty or names a field that cannot be updated.
    """
    unknown = set(patch) - _UPDATABLE_FIELDS
    if not patch or unknown:
        raise ValueError(
            f"Invalid puzzle patch fields: {sorted(unknown) or 'none given'}. "
            f"Allowed: {sorted(_UPDATABLE_FIELDS)}."
        )

    row_patch = {}
    if "films" in patch:
        row_patch["films"] = patch["films"]
    if "groups" in patch:
        row_patch["groups"] = patch["groups"]
    if "puzzleDate" in patch:
        row_patch["puzzle_date"] = patch["puzzleDate"]

    supabase = _get_client()
    supabase.table(TABLE).update(row_patch).eq("id", puzzle_id).execute()
    logger.info("Updated puzzle %s (%s)", puzzle_id, ", ".join(sorted(patch)))
    return get_puzzle(puzzle_id)


def delete_puzzle(puzzle_id: str) -> None:
    supabase = _get_client()
    supabase.table(TABLE).delete().eq("id", puzzle_id).execute()
    logger.info("Deleted puzzle %s", puzzle_id)
