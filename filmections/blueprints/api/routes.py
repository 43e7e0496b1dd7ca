"""
This module, 'routes.py', defines the API endpoints for the Filmections game.

Endpoints:
- POST /start-game: Starts a session for the puzzle scheduled today (or on a given date).
- POST /select-film: Toggles a film in the session's selection.
- POST /deselect-all: Clears the selection.
- POST /submit-guess: Submits the current selection as a guess.
- POST /shuffle-board: Reshuffles the remaining films.
- POST /game-status: Returns the current state of a session.
- POST /schedule-puzzle: Generates a puzzle and saves it on the next free date (auth).
- GET /stats: Returns the signed-in player's stats (auth).
"""

import logging
from datetime import date

from flask import Blueprint

from ...auth.middleware import get_current_user_id, get_optional_user_id, require_auth
from ...game.game import (
    PuzzleNotFoundError,
    deselect_all,
    get_game_state,
    get_user_stats,
    process_guess,
    schedule_next_puzzle,
    select_film,
    shuffle_board,
    start_game,
    validate_id,
)
from ...services.utils import create_response, parse_and_validate_request

logger = logging.getLogger(__name__)

api_bp = Blueprint("filmections", __name__)


def _game_id_from_request(extra_fields=()):
    """
    Parses a payload that must contain gameId (plus extra_fields) and checks
    the session exists.

    :return: (data, error_response). Exactly one of them is None.
    """
    data, error = parse_and_validate_request(["gameId", *extra_fields])
    if error:
        return None, create_response(error=error, status_code=400)
    if not validate_id(data["gameId"]):
        return None, create_response(error="Invalid game ID.", status_code=404)
    return data, None


@api_bp.route("/start-game", methods=["POST"])
def start_game_route():
    """
    Starts a session for today's puzzle, or for the optional ISO "date" in the
    payload. A signed-in player who already finished today's puzzle gets the
    completed board back.
    """
    data, error = parse_and_validate_request([])
    if error:
        return create_response(error=error, status_code=400)

    puzzle_date = data.get("date")
    if puzzle_date is not None:
        try:
            puzzle_date = date.fromisoformat(puzzle_date).isoformat()
        except (TypeError, ValueError):
            return create_response(error="Invalid date. Use YYYY-MM-DD.", status_code=400)

    try:
        game_id, state = start_game(puzzle_date, get_optional_user_id())
    except PuzzleNotFoundError as e:
        return create_response(error=str(e), status_code=404)

    return create_response(data={"gameId": game_id, **state}, status_code=201)


@api_bp.route("/select-film", methods=["POST"])
def select_film_route():
    data, error_response = _game_id_from_request(["filmId"])
    if error_response:
        return error_response

    film_id = data["filmId"]
    if isinstance(film_id, bool) or not isinstance(film_id, int):
        return create_response(error="filmId must be an integer.", status_code=400)

    return create_response(data=select_film(data["gameId"], film_id))


@api_bp.route("/deselect-all", methods=["POST"])
def deselect_all_route():
    data, error_response = _game_id_from_request()
    if error_response:
        return error_response
    return create_response(data=deselect_all(data["gameId"]))


@api_bp.route("/submit-guess", methods=["POST"])
def submit_guess():
    """
    Submits the session's current four-film selection. The response carries the
    updated state plus "result" (ignored | duplicate | correct | incorrect) and
    "isOneAway".
    """
    data, error_response = _game_id_from_request()
    if error_response:
        return error_response

    state, result, one_away = process_guess(data["gameId"])
    state.update({"result": result, "isOneAway": one_away})
    return create_response(data=state)


@api_bp.route("/shuffle-board", methods=["POST"])
def shuffle_board_route():
    data, error_response = _game_id_from_request()
    if error_response:
        return error_response
    return create_response(data=shuffle_board(data["gameId"]))


@api_bp.route("/game-status", methods=["POST"])
def game_status():
    """Returns the current state of a session. Requires gameId in the JSON payload."""
    data, error_response = _game_id_from_request()
    if error_response:
        return error_response
    return create_response(data=get_game_state(data["gameId"]))


@api_bp.route("/schedule-puzzle", methods=["POST"])
@require_auth
def schedule_puzzle_route():
    """
    Generates a puzzle and stores it on the next date without one. Pass
    {"test": true} to schedule the synthetic test puzzle instead.
    """
    data, error = parse_and_validate_request([])
    if error:
        return create_response(error=error, status_code=400)

    puzzle_date, puzzle_id = schedule_next_puzzle(test=bool(data.get("test", False)))
    logger.info("User %s scheduled puzzle %s for %s", get_current_user_id(), puzzle_id, puzzle_date)
    return create_response(data={"puzzleId": puzzle_id, "date": puzzle_date}, status_code=201)


@api_bp.route("/stats", methods=["GET"])
@require_auth
def stats():
    return create_response(data=get_user_stats(get_current_user_id()))
