"""
Tests for tmdb_service.py and EnrichedFilm.from_tmdb().

The requests session is mocked through _get_session(); no network access.

Coverage:
  - EnrichedFilm.from_tmdb  → directors, billing order, collection, keywords, companies
  - _get_session            → missing API key
  - get_movie_details       → request shape, error wrapping
  - get_random_movie_pool   → de-duplication, size cap, discover-call bound
"""

import random
import unittest
from unittest.mock import MagicMock, patch

import requests

from filmections.models.models import Collection, EnrichedFilm, Person
from filmections.services import tmdb_service
from filmections.services.tmdb_service import (
    MAX_DISCOVER_CALLS,
    MetadataSourceError,
    get_movie_details,
    get_random_movie_pool,
)

INCEPTION = {
    "id": 27205,
    "title": "Inception",
    "release_date": "2010-07-15",
    "poster_path": "/inception.jpg",
    "overview": "A thief who steals corporate secrets through dream-sharing technology.",
    "vote_count": 35000,
    "belongs_to_collection": None,
    "production_companies": [{"id": 923, "name": "Legendary"}, {"id": 9996, "name": "Syncopy"}],
    "credits": {
        "cast": [
            {"id": 24045, "name": "Joseph Gordon-Levitt", "order": 1},
            {"id": 6193, "name": "Leonardo DiCaprio", "order": 0},
        ],
        "crew": [
            {"id": 525, "name": "Christopher Nolan", "job": "Director"},
            {"id": 525, "name": "Christopher Nolan", "job": "Writer"},
        ],
    },
    "keywords": {"keywords": [{"id": 1, "name": "dream"}, {"id": 2, "name": "heist"}]},
}


def _response(payload):
    response = MagicMock()
    response.json.return_value = payload
    return response


class TestFromTmdb(unittest.TestCase):

    def test_parses_details_payload(self):
        film = EnrichedFilm.from_tmdb(INCEPTION)

        self.assertEqual(film.id, 27205)
        self.assertEqual(film.year, 2010)
        self.assertEqual(film.poster_path, "/inception.jpg")
        self.assertEqual(film.directors, (Person(id=525, name="Christopher Nolan"),))
        self.assertEqual([p.name for p in film.cast], ["Leonardo DiCaprio", "Joseph Gordon-Levitt"])
        self.assertIsNone(film.collection)
        self.assertEqual(film.keywords, ("dream", "heist"))
        self.assertEqual(film.company_ids, (923, 9996))
        self.assertEqual(film.vote_count, 35000)

    def test_sparse_payload(self):
        film = EnrichedFilm.from_tmdb({
            "id": 1,
            "title": "Unknown",
            "release_date": "",
            "belongs_to_collection": {"id": 10, "name": "Some Collection"},
        })

        self.assertEqual(film.year, 0)
        self.assertEqual(film.collection, Collection(id=10, name="Some Collection"))
        self.assertEqual(film.cast, ())
        self.assertEqual(film.overview, "")
        self.assertEqual(film.to_film().to_dict(), {"id": 1, "title": "Unknown", "year": 0})


class TestSession(unittest.TestCase):

    def test_missing_api_key(self):
        with patch.object(tmdb_service, "_session", None), patch.dict("os.environ", {}, clear=True):
            with self.assertRaises(MetadataSourceError):
                tmdb_service._get_session()


class TestGetMovieDetails(unittest.TestCase):

    @patch("filmections.services.tmdb_service._get_session")
    def test_requests_credits_and_keywords(self, mock_get_session):
        session = MagicMock()
        mock_get_session.return_value = session
        session.get.return_value = _response(INCEPTION)

        film = get_movie_details(27205)

        self.assertEqual(film.title, "Inception")
        url = session.get.call_args[0][0]
        self.assertTrue(url.endswith("/movie/27205"))
        self.assertEqual(
            session.get.call_args.kwargs["params"],
            {"append_to_response": "credits,keywords"},
        )

    @patch("filmections.services.tmdb_service._get_session")
    def test_http_error_is_wrapped(self, mock_get_session):
        session = MagicMock()
        mock_get_session.return_value = session
        session.get.return_value.raise_for_status.side_effect = requests.exceptions.HTTPError("401")

        with self.assertRaises(MetadataSourceError):
            get_movie_details(27205)

    @patch("filmections.services.tmdb_service._get_session")
    def test_connection_error_is_wrapped(self, mock_get_session):
        session = MagicMock()
        mock_get_session.return_value = session
        session.get.side_effect = requests.exceptions.ConnectionError("unreachable")

        with self.assertRaises(MetadataSourceError):
            get_movie_details(27205)

    @patch("filmections.services.tmdb_service._get_session")
    def test_invalid_json_is_wrapped(self, mock_get_session):
        session = MagicMock()
        mock_get_session.return_value = session
        session.get.return_value.json.side_effect = ValueError("not json")

        with self.assertRaises(MetadataSourceError):
            get_movie_details(27205)


class TestGetRandomMoviePool(unittest.TestCase):

    @patch("filmections.services.tmdb_service.get_movie_details")
    @patch("filmections.services.tmdb_service._discover_ids")
    def test_collects_distinct_ids_up_to_n(self, mock_discover, mock_details):
        mock_discover.side_effect = [[1, 2, 3], [3, 4, 5], [5, 6, 7]]
        mock_details.side_effect = lambda movie_id: EnrichedFilm(id=movie_id, title=str(movie_id), year=2000)

        pool = get_random_movie_pool(6, random.Random(0))

        self.assertEqual([f.id for f in pool], [1, 2, 3, 4, 5, 6])
        self.assertEqual(mock_discover.call_count, 3)

    @patch("filmections.services.tmdb_service.get_movie_details")
    @patch("filmections.services.tmdb_service._discover_ids", return_value=[])
    def test_sparse_results_stop_at_call_limit(self, mock_discover, mock_details):
        pool = get_random_movie_pool(10, random.Random(0))

        self.assertEqual(pool, [])
        self.assertEqual(mock_discover.call_count, MAX_DISCOVER_CALLS)
        mock_details.assert_not_called()


if __name__ == "__main__":
    unittest.main()
