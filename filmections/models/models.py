"""
This module defines the data model for the Filmections game: films, the enriched
film records used by the puzzle generator, finished groups and puzzles, the live
session state, and the persisted history/stats records.

Classes:
- GameStatus: Enum defining possible states of a game session.
- Difficulty / Color: The four difficulty tiers and the colour bound to each.
- ConnectionCategory: The kinds of hidden connection the generator mines for.
- Film, Person, Collection, EnrichedFilm: Film records.
- PotentialGroup, Group, Puzzle, SavedPuzzle: Generation and puzzle records.
- SessionState: Immutable snapshot of a play session.
- GameHistoryEntry, UserStats: Per-user completion history and aggregates.

Every persisted type offers to_dict()/from_dict() using the camelCase keys the
API and the storage tables share.
"""

import enum
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Tuple

GROUP_SIZE = 4
NUM_GROUPS = 4
MAX_MISTAKES = 4


class GameStatus(enum.Enum):
    PLAYING = "playing"
    WON = "won"
    LOST = "lost"


class Difficulty(enum.Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"
    HARDEST = "hardest"


class Color(enum.Enum):
    YELLOW = "yellow"
    GREEN = "green"
    BLUE = "blue"
    PURPLE = "purple"


# Tier order, easiest first. Index == quartile.
TIERS: List[Tuple[Difficulty, Color]] = [
    (Difficulty.EASY, Color.YELLOW),
    (Difficulty.MEDIUM, Color.GREEN),
    (Difficulty.HARD, Color.BLUE),
    (Difficulty.HARDEST, Color.PURPLE),
]


class ConnectionCategory(enum.Enum):
    PERSON = "person"
    COLLECTION = "collection"
    THEME = "theme"
    STUDIO = "studio"
    WORDPLAY = "wordplay"


@dataclass(frozen=True)
class Film:
    """A film as shown to the player."""

    id: int
    title: str
    year: int
    poster_path: Optional[str] = None

    def to_dict(self) -> dict:
        data = {"id": self.id, "title": self.title, "year": self.year}
        if self.poster_path:
            data["posterPath"] = self.poster_path
        return data

    @staticmethod
    def from_dict(data: dict) -> "Film":
        return Film(
            id=int(data["id"]),
            title=data["title"],
            year=int(data["year"]),
            poster_path=data.get("posterPath"),
        )


@dataclass(frozen=True)
class Person:
    id: int
    name: str


@dataclass(frozen=True)
class Collection:
    id: int
    name: str


@dataclass(frozen=True)
class EnrichedFilm:
    """
    A film plus the metadata the candidate miner needs.

    Attributes:
        directors (tuple): Crew members credited with the "Director" job.
        cast (tuple): Cast members in billing order.
        collection (Collection): The franchise/collection the film belongs to, if any.
        keywords (tuple): Descriptive keyword names.
        overview (str): Plot summary text.
        company_ids (tuple): Production company ids in credit order.
        vote_count (int): Number of audience votes, a proxy for familiarity.
    """

    id: int
    title: str
    year: int
    poster_path: Optional[str] = None
    directors: Tuple[Person, ...] = ()
    cast: Tuple[Person, ...] = ()
    collection: Optional[Collection] = None
    keywords: Tuple[str, ...] = ()
    overview: str = ""
    company_ids: Tuple[int, ...] = ()
    vote_count: int = 0

    def to_film(self) -> Film:
        return Film(id=self.id, title=self.title, year=self.year, poster_path=self.poster_path)

    @staticmethod
    def from_tmdb(movie: dict) -> "EnrichedFilm":
        """
        Builds an EnrichedFilm from a TMDB movie-details payload fetched with
        append_to_response=credits,keywords.
        """
        release_date = movie.get("release_date") or ""
        year = int(release_date[:4]) if release_date[:4].isdigit() else 0

        credits = movie.get("credits") or {}
        directors = tuple(
            Person(id=c["id"], name=c["name"])
            for c in credits.get("crew") or []
            if c.get("job") == "Director"
        )
        cast = tuple(
            Person(id=c["id"], name=c["name"])
            for c in sorted(credits.get("cast") or [], key=lambda c: c.get("order", 0))
        )

        collection_data = movie.get("belongs_to_collection")
        collection = (
            Collection(id=collection_data["id"], name=collection_data["name"])
            if collection_data
            else None
        )

        keywords = tuple(
            k["name"] for k in (movie.get("keywords") or {}).get("keywords") or []
        )

        return EnrichedFilm(
            id=movie["id"],
            title=movie["title"],
            year=year,
            poster_path=movie.get("poster_path") or None,
            directors=directors,
            cast=cast,
            collection=collection,
            keywords=keywords,
            overview=movie.get("overview") or "",
            company_ids=tuple(c["id"] for c in movie.get("production_companies") or []),
            vote_count=movie.get("vote_count") or 0,
        )


@dataclass
class PotentialGroup:
    """A candidate grouping found by the miner, before tier selection."""

    films: List[EnrichedFilm]
    connection: str
    category: ConnectionCategory
    difficulty_score: float

    @property
    def film_ids(self) -> List[int]:
        return [f.id for f in self.films]


@dataclass
class SelectedGroup:
    """A candidate that the difficulty selector assigned to a tier."""

    candidate: PotentialGroup
    difficulty: Difficulty
    color: Color


@dataclass(frozen=True)
class Group:
    """A finished, player-facing group of exactly four films."""

    id: str
    films: Tuple[Film, ...]
    connection: str
    difficulty: Difficulty
    color: Color

    def __post_init__(self):
        if len(self.films) != GROUP_SIZE:
            raise ValueError(
                f"Group '{self.id}' must contain exactly {GROUP_SIZE} films, got {len(self.films)}."
            )

    @property
    def film_ids(self) -> Tuple[int, ...]:
        return tuple(sorted(f.id for f in self.films))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "films": [f.to_dict() for f in self.films],
            "connection": self.connection,
            "difficulty": self.difficulty.value,
            "color": self.color.value,
        }

    @staticmethod
    def from_dict(data: dict) -> "Group":
        return Group(
            id=data["id"],
            films=tuple(Film.from_dict(f) for f in data["films"]),
            connection=data["connection"],
            difficulty=Difficulty(data["difficulty"]),
            color=Color(data["color"]),
        )


@dataclass(frozen=True)
class Puzzle:
    groups: Tuple[Group, ...]
    films: Tuple[Film, ...]

    def to_dict(self) -> dict:
        return {
            "groups": [g.to_dict() for g in self.groups],
            "films": [f.to_dict() for f in self.films],
        }


@dataclass(frozen=True)
class SavedPuzzle:
    """A puzzle as persisted in storage, keyed by calendar date."""

    id: str
    films: Tuple[Film, ...]
    groups: Tuple[Group, ...]
    created_at: int
    puzzle_date: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "films": [f.to_dict() for f in self.films],
            "groups": [g.to_dict() for g in self.groups],
            "createdAt": self.created_at,
            "puzzleDate": self.puzzle_date,
        }

    @staticmethod
    def from_dict(data: dict) -> "SavedPuzzle":
        return SavedPuzzle(
            id=data["id"],
            films=tuple(Film.from_dict(f) for f in data.get("films") or []),
            groups=tuple(Group.from_dict(g) for g in data.get("groups") or []),
            created_at=data.get("createdAt") or 0,
            puzzle_date=data.get("puzzleDate"),
        )


@dataclass(frozen=True)
class SessionState:
    """
    Immutable snapshot of a play session. Transitions in game/session.py return
    a new SessionState rather than mutating this one.

    Attributes:
        films (tuple): Remaining films that are not yet part of a found group.
        groups (tuple): The puzzle's full answer key, in generation order.
        selected_film_ids (tuple): Currently selected film ids, at most four.
        found_groups (tuple): Groups found so far, in discovery order.
        previous_guesses (tuple): Ascending 4-tuples of every recorded guess.
        mistakes (int): Incorrect guesses so far.
        status (GameStatus): playing, won or lost.
        notification (str): Transient message for the player, or None.
        is_shaking (bool): Transient wrong-guess animation hint.
        puzzle_date (str): ISO date of the puzzle being played, if any.
    """

    films: Tuple[Film, ...] = ()
    groups: Tuple[Group, ...] = ()
    selected_film_ids: Tuple[int, ...] = ()
    found_groups: Tuple[Group, ...] = ()
    previous_guesses: Tuple[Tuple[int, ...], ...] = ()
    mistakes: int = 0
    status: GameStatus = GameStatus.PLAYING
    notification: Optional[str] = None
    is_shaking: bool = False
    puzzle_date: Optional[str] = None

    def to_state(self) -> dict:
        """
        Returns the camelCase dict sent to clients. Unfound groups are omitted
        from the answer key while the game is still in progress.
        """
        return {
            "films": [f.to_dict() for f in self.films],
            "selectedFilmIds": list(self.selected_film_ids),
            "foundGroups": [g.to_dict() for g in self.found_groups],
            "previousGuesses": [list(g) for g in self.previous_guesses],
            "mistakes": self.mistakes,
            "mistakesLeft": MAX_MISTAKES - self.mistakes,
            "status": self.status.value,
            "notification": self.notification,
            "isShaking": self.is_shaking,
            "puzzleDate": self.puzzle_date,
        }


@dataclass(frozen=True)
class GameHistoryEntry:
    date: str
    won: bool
    mistakes: int
    completed_at: int

    def to_dict(self) -> dict:
        return {
            "date": self.date,
            "won": self.won,
            "mistakes": self.mistakes,
            "completedAt": self.completed_at,
        }

    @staticmethod
    def from_dict(data: dict) -> "GameHistoryEntry":
        return GameHistoryEntry(
            date=data["date"],
            won=bool(data["won"]),
            mistakes=int(data["mistakes"]),
            completed_at=int(data.get("completedAt") or 0),
        )


@dataclass(frozen=True)
class UserStats:
    games_played: int = 0
    games_won: int = 0
    win_rate: float = 0.0
    current_streak: int = 0
    max_streak: int = 0
    last_played_date: Optional[str] = None
    game_history: Tuple[GameHistoryEntry, ...] = field(default_factory=tuple)

    @staticmethod
    def from_history(history: List[GameHistoryEntry]) -> "UserStats":
        """
        Derives aggregate statistics from a user's completion history.

        A streak counts consecutive calendar days that each hold a won game.
        The current streak is the run ending on the most recently played date.
        """
        if not history:
            return UserStats()

        ordered = sorted(history, key=lambda e: (e.date, e.completed_at))
        games_played = len(ordered)
        games_won = sum(1 for e in ordered if e.won)

        won_by_day = {}
        for entry in ordered:
            # A later completion on the same day overrides an earlier one.
            won_by_day[entry.date] = entry.won

        max_streak = 0
        streak = 0
        previous_day = None
        for day in sorted(won_by_day):
            parsed = date.fromisoformat(day)
            if not won_by_day[day]:
                streak = 0
            elif previous_day is not None and (parsed - previous_day).days == 1 and streak:
                streak += 1
            else:
                streak = 1
            max_streak = max(max_streak, streak)
            previous_day = parsed

        return UserStats(
            games_played=games_played,
            games_won=games_won,
            win_rate=round(games_won / games_played * 100, 1),
            current_streak=streak,
            max_streak=max_streak,
            last_played_date=ordered[-1].date,
            game_history=tuple(ordered),
        )

    def to_dict(self) -> dict:
        return {
            "gamesPlayed": self.games_played,
            "gamesWon": self.games_won,
            "winRate": self.win_rate,
            "currentStreak": self.current_streak,
            "maxStreak": self.max_streak,
            "lastPlayedDate": self.last_played_date,
            "gameHistory": [e.to_dict() for e in self.game_history],
        }
