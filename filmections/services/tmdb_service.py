"""
TMDB metadata source for the Filmections puzzle generator.

Fetches a random pool of well-known films spread across release eras, with the
credits, keywords, collection and production company details the candidate
miner needs.

Public API
----------
get_random_movie_pool(n)  → list[EnrichedFilm]  - random pool of enriched films
get_movie_details(id)     → EnrichedFilm        - one film with credits + keywords

Failures (network errors, non-2xx responses, missing API key) raise
MetadataSourceError so the caller can decide what to do; nothing is fabricated.
"""

import logging
import os
import random
from datetime import date
from typing import Dict, List, Optional

import requests

from ..models.models import EnrichedFilm

logger = logging.getLogger(__name__)

TMDB_BASE_URL = "https://api.themoviedb.org/3"
REQUEST_TIMEOUT = 10

# Popular films only: enough votes that connections are fair to players.
MIN_VOTE_COUNT = 500
# Discover pages beyond this get obscure quickly.
MAX_DISCOVER_PAGE = 10
# Upper bound on discover calls per pool so a sparse era can't loop forever.
MAX_DISCOVER_CALLS = 60

# (first year, last year) ranges sampled evenly so a pool isn't all recent releases.
ERAS = [
    (1970, 1989),
    (1990, 1999),
    (2000, 2009),
    (2010, 2019),
    (2020, None),
]


class MetadataSourceError(Exception):
    """Raised when the metadata source cannot be reached or returns an error."""
    pass


# ---------------------------------------------------------------------------
# HTTP session — lazy singleton, mocked in tests via _get_session().
# ---------------------------------------------------------------------------
_session = None


def _get_session() -> requests.Session:
    """Returns the shared requests session, creating it on first call."""
    global _session
    if _session is None:
        api_key = os.getenv("TMDB_API_KEY")
        if not api_key:
            raise MetadataSourceError(
                "TMDB_API_KEY environment variable must be set. "
                "Add it to .env (use .env.example as a template)."
            )
        session = requests.Session()
        session.params = {"api_key": api_key}
        session.headers.update({"Accept": "application/json"})
        _session = session
    return _session


def _get(path: str, params: Optional[dict] = None) -> dict:
    session = _get_session()
    try:
        response = session.get(f"{TMDB_BASE_URL}{path}", params=params, timeout=REQUEST_TIMEOUT)
        response.raise_for_status()
        return response.json()
    except requests.exceptions.RequestException as e:
        raise MetadataSourceError(f"TMDB request to {path} failed: {e}") from e
    except ValueError as e:
        raise MetadataSourceError(f"TMDB returned invalid JSON for {path}: {e}") from e


def _discover_ids(era: tuple, page: int) -> List[int]:
    first_year, last_year = era
    last_year = last_year or date.today().year
    data = _get("/discover/movie", {
        "sort_by": "popularity.desc",
        "include_adult": "false",
        "vote_count.gte": MIN_VOTE_COUNT,
        "primary_release_date.gte": f"{first_year}-01-01",
        "primary_release_date.lte": f"{last_year}-12-31",
        "page": page,
    })
    return [movie["id"] for movie in data.get("results") or []]


def get_movie_details(movie_id: int) -> EnrichedFilm:
    """Fetches one film with credits and keywords appended."""
    data = _get(f"/movie/{movie_id}", {"append_to_response": "credits,keywords"})
    return EnrichedFilm.from_tmdb(data)


def get_random_movie_pool(n: int = 150, rng=random) -> List[EnrichedFilm]:
    """
    Samples up to n distinct films across ERAS and returns them enriched.

    Discover pages are drawn at random per era in round-robin order until n ids
    are collected or MAX_DISCOVER_CALLS is reached; the pool can therefore be
    smaller than n when TMDB returns sparse results.

    Raises:
        MetadataSourceError: Any TMDB request fails.
    """
    movie_ids: Dict[int, None] = {}
    calls = 0
    while len(movie_ids) < n and calls < MAX_DISCOVER_CALLS:
        era = ERAS[calls % len(ERAS)]
        page = rng.randint(1, MAX_DISCOVER_PAGE)
        calls += 1
        for movie_id in _discover_ids(era, page):
            movie_ids.setdefault(movie_id, None)

    selected = list(movie_ids)[:n]
    logger.info(
        "Fetching details for %d films (%d discover calls)", len(selected), calls
    )
    return [get_movie_details(movie_id) for movie_id in selected]
