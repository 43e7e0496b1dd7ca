"""
Stats Service for the Filmections game.

Stores one row per completed game in the Supabase `game_history` table and
derives the user's aggregate stats from it:

    id | user_id | puzzle_date | won | mistakes | completed_at (bigint ms)

Follows the same lazy-singleton client pattern as puzzle_storage_service.py.

Public API
----------
StatsStorage(user_id)          - per-user stats storage used by the scheduler
  .get_stats()                 → UserStats
  .record_completion(entry)    → None
  .reset_stats()               → None
"""

import logging
import os
from typing import List

from ..models.models import GameHistoryEntry, UserStats

logger = logging.getLogger(__name__)

TABLE = "game_history"

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


def _row_to_entry(row: dict) -> GameHistoryEntry:
    return GameHistoryEntry(
        date=row["puzzle_date"],
        won=bool(row["won"]),
        mistakes=int(row["mistakes"]),
        completed_at=int(row.get("completed_at") or 0),
    )


class StatsStorage:
    """Completion history and stats for a single authenticated user."""

    def __init__(self, user_id: str) -> None:
        if not user_id:
            raise ValueError("StatsStorage requires a user id.")
        self.user_id = user_id

    def get_history(self) -> List[GameHistoryEntry]:
        supabase = _get_client()
        result = (
            supabase.table(TABLE)
            .select("*")
            .eq("user_id", self.user_id)
            .order("completed_at")
            .execute()
        )
        return [_row_to_entry(row) for row in result.data]

    def get_stats(self) -> UserStats:
        return UserStats.from_history(self.get_history())

    def record_completion(self, entry: GameHistoryEntry) -> None:
        supabase = _get_client()
        supabase.table(TABLE).insert({
            "user_id":      self.user_id,
            "puzzle_date":  entry.date,
            "won":          entry.won,
            "mistakes":     entry.mistakes,
            "completed_at": entry.completed_at,
        }).execute()
        logger.info(
            "Recorded completion for user %s on %s (won=%s, mistakes=%d)",
            self.user_id, entry.date, entry.won, entry.mistakes,
        )

    def reset_stats(self) -> None:
        supabase = _get_client()
        supabase.table(TABLE).delete().eq("user_id", self.user_id).execute()
        logger.info("Reset stats for user %s", self.user_id)
