"""
Candidate Miner — Step 1 of the Filmections puzzle generation pipeline.

Scans a pool of enriched film records for hidden connections and returns every
candidate group it can find. Each category is mined independently, so the same
film may appear in candidates from several categories; the difficulty selector
is responsible for picking a disjoint set.

Categories:
  person      — shared director, or shared actor among the top-billed cast
  collection  — films from the same collection/franchise
  theme       — curated thematic keyword sets matched against overview, title and keywords
  studio      — curated distinctive production companies
  wordplay    — a shared uncommon word in the title

Usage:
    from filmections.generation.candidate_miner import mine_all_candidates

    candidates = mine_all_candidates(pool)
    # Returns: {ConnectionCategory.PERSON: [PotentialGroup, ...], ...}
"""

import logging
import random
import re
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional

from ..models.models import (
    GROUP_SIZE,
    ConnectionCategory,
    EnrichedFilm,
    PotentialGroup,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Scoring constants
# ---------------------------------------------------------------------------

# Vote-based scores: fewer average votes ⇒ less familiar ⇒ harder.
VOTE_SCORE_CEILING = 10000

# Curated base difficulties (1–4) are scaled into the same range as the
# vote-based scores.
CURATED_SCORE_SCALE = 2000

# Only the top-billed actors count as a film's leads.
TOP_BILLED_CAST = 5

# ---------------------------------------------------------------------------
# Curated lists
# ---------------------------------------------------------------------------

# Checked in order; a film joins the first theme it matches.
THEMES = [
    {"keywords": ["heist", "robbery", "steal"], "name": "Heist films", "difficulty": 2},
    {"keywords": ["time travel", "time machine"], "name": "Time travel films", "difficulty": 2},
    {"keywords": ["artificial intelligence", "robot", "ai"], "name": "AI/Robot films", "difficulty": 2},
    {"keywords": ["zombie", "undead"], "name": "Zombie films", "difficulty": 1},
    {"keywords": ["vampire"], "name": "Vampire films", "difficulty": 1},
    {"keywords": ["superhero", "marvel", "dc comics"], "name": "Superhero films", "difficulty": 1},
    {"keywords": ["space", "astronaut", "alien"], "name": "Space films", "difficulty": 2},
    {"keywords": ["world war", "vietnam war"], "name": "War films", "difficulty": 2},
    {"keywords": ["high school", "college"], "name": "School/College films", "difficulty": 3},
    {"keywords": ["hitman", "assassin"], "name": "Assassin films", "difficulty": 3},
]

# TMDB company ids with a distinctive house style.
STUDIOS = [
    {"id": 3, "label": "Pixar films", "difficulty": 1},
    {"id": 2, "label": "Disney films", "difficulty": 1},
    {"id": 420, "label": "Marvel films", "difficulty": 1},
    {"id": 9993, "label": "DC films", "difficulty": 2},
    {"id": 33, "label": "Universal films", "difficulty": 2},
    {"id": 1632, "label": "Lionsgate films", "difficulty": 3},
    {"id": 25, "label": "20th Century Fox films", "difficulty": 2},
    {"id": 4, "label": "Paramount films", "difficulty": 2},
    {"id": 174, "label": "Warner Bros. films", "difficulty": 2},
    {"id": 7505, "label": "A24 films", "difficulty": 4},
]

_STUDIOS_BY_ID = {studio["id"]: studio for studio in STUDIOS}

STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of",
    "with", "by", "from", "as", "is", "was", "are", "been", "be", "part", "movie",
})

MIN_WORD_LENGTH = 5
# Tokens shared by more films than this are too common to be a fair connection.
MAX_WORDPLAY_FILMS = 6

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _pick_four(films: List[EnrichedFilm], rng) -> List[EnrichedFilm]:
    """Uniformly random 4-film subset (order randomised as well)."""
    return rng.sample(films, GROUP_SIZE)


def _vote_score(films: Iterable[EnrichedFilm]) -> float:
    films = list(films)
    mean_votes = sum(f.vote_count or 0 for f in films) / len(films)
    return VOTE_SCORE_CEILING - mean_votes


def title_tokens(title: str) -> List[str]:
    """Normalises a title into the words eligible for wordplay connections."""
    normalized = _NON_ALNUM.sub("", title.lower())
    return [
        word for word in normalized.split()
        if len(word) >= MIN_WORD_LENGTH and word not in STOP_WORDS
    ]


def _matches_theme(film: EnrichedFilm, keywords: List[str]) -> bool:
    overview = film.overview.lower()
    title = film.title.lower()
    tags = [k.lower() for k in film.keywords]
    return any(
        keyword in overview or keyword in title or any(keyword in tag for tag in tags)
        for keyword in keywords
    )


# ---------------------------------------------------------------------------
# Category miners
# ---------------------------------------------------------------------------

def _mine_people(
    pool: List[EnrichedFilm],
    credits_for,
    label_format: str,
    rng,
) -> List[PotentialGroup]:
    people: "OrderedDict[int, dict]" = OrderedDict()
    for film in pool:
        for person in credits_for(film):
            entry = people.setdefault(person.id, {"name": person.name, "films": []})
            # A person credited twice on one film still only counts that film once.
            if film not in entry["films"]:
                entry["films"].append(film)

    groups = []
    for data in people.values():
        if len(data["films"]) >= GROUP_SIZE:
            groups.append(PotentialGroup(
                films=_pick_four(data["films"], rng),
                connection=label_format.format(name=data["name"]),
                category=ConnectionCategory.PERSON,
                difficulty_score=_vote_score(data["films"]),
            ))
    return groups


def mine_directors(pool: List[EnrichedFilm], rng=random) -> List[PotentialGroup]:
    return _mine_people(pool, lambda f: f.directors, "Directed by {name}", rng)


def mine_actors(pool: List[EnrichedFilm], rng=random) -> List[PotentialGroup]:
    return _mine_people(pool, lambda f: f.cast[:TOP_BILLED_CAST], "Starring {name}", rng)


def mine_collections(pool: List[EnrichedFilm], rng=random) -> List[PotentialGroup]:
    collections: "OrderedDict[int, dict]" = OrderedDict()
    for film in pool:
        if film.collection is None:
            continue
        entry = collections.setdefault(
            film.collection.id, {"name": film.collection.name, "films": []}
        )
        entry["films"].append(film)

    return [
        PotentialGroup(
            films=_pick_four(data["films"], rng),
            connection=data["name"],
            category=ConnectionCategory.COLLECTION,
            difficulty_score=_vote_score(data["films"]),
        )
        for data in collections.values()
        if len(data["films"]) >= GROUP_SIZE
    ]


def mine_themes(pool: List[EnrichedFilm], rng=random) -> List[PotentialGroup]:
    themed: "OrderedDict[str, dict]" = OrderedDict()
    for film in pool:
        for theme in THEMES:
            if _matches_theme(film, theme["keywords"]):
                entry = themed.setdefault(
                    theme["name"], {"difficulty": theme["difficulty"], "films": []}
                )
                entry["films"].append(film)
                break

    return [
        PotentialGroup(
            films=_pick_four(data["films"], rng),
            connection=name,
            category=ConnectionCategory.THEME,
            difficulty_score=data["difficulty"] * CURATED_SCORE_SCALE,
        )
        for name, data in themed.items()
        if len(data["films"]) >= GROUP_SIZE
    ]


def mine_studios(pool: List[EnrichedFilm], rng=random) -> List[PotentialGroup]:
    by_studio: "OrderedDict[int, dict]" = OrderedDict()
    for film in pool:
        studio: Optional[dict] = next(
            (_STUDIOS_BY_ID[cid] for cid in film.company_ids if cid in _STUDIOS_BY_ID),
            None,
        )
        if studio is None:
            continue
        entry = by_studio.setdefault(
            studio["id"], {"label": studio["label"], "difficulty": studio["difficulty"], "films": []}
        )
        entry["films"].append(film)

    return [
        PotentialGroup(
            films=_pick_four(data["films"], rng),
            connection=data["label"],
            category=ConnectionCategory.STUDIO,
            difficulty_score=data["difficulty"] * CURATED_SCORE_SCALE,
        )
        for data in by_studio.values()
        if len(data["films"]) >= GROUP_SIZE
    ]


def wordplay_difficulty(word: str, film_count: int) -> int:
    """Longer and rarer shared words are harder to spot."""
    if len(word) >= 8 and film_count == GROUP_SIZE:
        return 4
    if len(word) >= 7 or film_count == GROUP_SIZE:
        return 3
    return 2


def mine_wordplay(pool: List[EnrichedFilm], rng=random) -> List[PotentialGroup]:
    by_word: "OrderedDict[str, List[EnrichedFilm]]" = OrderedDict()
    for film in pool:
        # A word repeated within one title counts that film once.
        for word in dict.fromkeys(title_tokens(film.title)):
            by_word.setdefault(word, []).append(film)

    groups = []
    for word, films in by_word.items():
        if not GROUP_SIZE <= len(films) <= MAX_WORDPLAY_FILMS:
            continue
        groups.append(PotentialGroup(
            films=_pick_four(films, rng),
            connection=f'"{word.capitalize()}" in the title',
            category=ConnectionCategory.WORDPLAY,
            difficulty_score=wordplay_difficulty(word, len(films)) * CURATED_SCORE_SCALE,
        ))
    return groups


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def mine_all_candidates(
    pool: List[EnrichedFilm], rng=random
) -> Dict[ConnectionCategory, List[PotentialGroup]]:
    """
    Runs every category miner over the pool.

    Args:
        pool: Enriched films, already filtered against recently used ids.
        rng:  Random source used for 4-film subset selection. Anything with a
              sample() method; defaults to the random module.

    Returns:
        Dict mapping each ConnectionCategory to its candidate list. Person
        candidates cover both directors and actors.
    """
    candidates = {
        ConnectionCategory.PERSON: mine_directors(pool, rng) + mine_actors(pool, rng),
        ConnectionCategory.COLLECTION: mine_collections(pool, rng),
        ConnectionCategory.THEME: mine_themes(pool, rng),
        ConnectionCategory.STUDIO: mine_studios(pool, rng),
        ConnectionCategory.WORDPLAY: mine_wordplay(pool, rng),
    }
    logger.debug(
        "Mined candidates from %d films: %s",
        len(pool),
        {category.value: len(groups) for category, groups in candidates.items()},
    )
    return candidates
