"""
Recent Content Tracker for the Filmections game.

Remembers which films and which connection labels appeared in the last few
completed games so the puzzle generator can steer away from repeats.

The history lives in a small local JSON file (newest game first):

    [{"filmIds": [...], "connections": [...], "timestamp": 1736899200000}, ...]

The cache is best-effort: read and write failures are logged and swallowed so
they never block gameplay or generation.
"""

import json
import logging
import os
import tempfile
import threading
import time
from pathlib import Path
from typing import Iterable, List, Optional, Set

logger = logging.getLogger(__name__)

MAX_RECENT_GAMES = 5

DEFAULT_CACHE_PATH = Path.home() / ".filmections" / "recent_content.json"


def _default_path() -> Path:
    configured = os.getenv("FILMECTIONS_RECENT_CACHE")
    return Path(configured) if configured else DEFAULT_CACHE_PATH


class RecentContentTracker:
    """
    Tracks recently used film ids and connection labels.

    Args:
        path:      Location of the JSON cache. Defaults to $FILMECTIONS_RECENT_CACHE
                   or ~/.filmections/recent_content.json.
        max_games: How many completed games to remember.
        clock:     Returns the current time in seconds; injectable for tests.
    """

    def __init__(
        self,
        path: Optional[Path] = None,
        max_games: int = MAX_RECENT_GAMES,
        clock=time.time,
    ) -> None:
        self.path = Path(path) if path else _default_path()
        self.max_games = max_games
        self._clock = clock
        self._lock = threading.Lock()

    def get_recent_film_ids(self) -> Set[int]:
        return {film_id for game in self._load() for film_id in game["filmIds"]}

    def get_recent_connections(self) -> Set[str]:
        return {conn for game in self._load() for conn in game["connections"]}

    def save_game(self, film_ids: Iterable[int], connections: Iterable[str]) -> None:
        """Records a completed game, keeping only the newest max_games entries."""
        entry = {
            "filmIds": list(film_ids),
            "connections": list(connections),
            "timestamp": int(self._clock() * 1000),
        }

        with self._lock:
            recent = self._load()
            recent.insert(0, entry)
            trimmed = recent[: self.max_games]
            try:
                self._write(trimmed)
            except OSError as exc:
                logger.warning("Failed to save recent content to %s: %s", self.path, exc)
                return

        logger.debug("Saved recent content (%d games tracked)", len(trimmed))

    def clear(self) -> None:
        with self._lock:
            try:
                self.path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Failed to clear recent content at %s: %s", self.path, exc)

    def _write(self, games: List[dict]) -> None:
        """Writes to a sibling temp file, then swaps it into place."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(games, fh)
            os.replace(tmp_name, self.path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _load(self) -> List[dict]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as exc:
            logger.warning("Failed to load recent content from %s: %s", self.path, exc)
            return []

        try:
            data = json.loads(raw)
        except ValueError as exc:
            logger.warning("Recent content cache %s is corrupt: %s", self.path, exc)
            return []

        if not isinstance(data, list):
            logger.warning("Recent content cache %s has unexpected shape; ignoring", self.path)
            return []

        games = [game for game in data if _is_valid_entry(game)]
        if len(games) != len(data):
            logger.warning(
                "Recent content cache %s: ignoring %d malformed entries",
                self.path, len(data) - len(games),
            )
        return games


def _is_valid_entry(game) -> bool:
    return (
        isinstance(game, dict)
        and isinstance(game.get("filmIds"), list)
        and isinstance(game.get("connections"), list)
    )
