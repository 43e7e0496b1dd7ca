"""
Main application module for the Filmections game API.

This module sets up the Flask application, registers the API Blueprint,
and defines the root route and error handlers.

Routes:
- /: Welcome message for the Filmections game API.

Error Handlers:
- 404 Not Found: Handles requests for non-existent routes.
- 500 Internal Server Error: Handles internal server errors.
"""

import logging

from dotenv import load_dotenv
from flask import Flask

from .blueprints.api.routes import api_bp
from .generation.puzzle_generator import PuzzleGenerationError
from .services.puzzle_scheduler import NoAvailableDateError
from .services.tmdb_service import MetadataSourceError
from .services.utils import create_response

logger = logging.getLogger(__name__)


def create_app():
    load_dotenv()

    app = Flask(__name__)
    app.register_blueprint(api_bp, url_prefix="/filmections")

    @app.route("/")
    def index():
        return create_response(data={"message": "Welcome to the Filmections game API!"})

    @app.errorhandler(404)
    def not_found(error):
        return create_response(error="Not Found", status_code=404)

    @app.errorhandler(NoAvailableDateError)
    def no_available_date(error):
        return create_response(error=str(error), status_code=409)

    @app.errorhandler(MetadataSourceError)
    def metadata_unavailable(error):
        logger.error("Metadata source failure: %s", error)
        return create_response(error="Movie metadata is unavailable.", status_code=502)

    @app.errorhandler(PuzzleGenerationError)
    def generation_failed(error):
        logger.error("Puzzle generation failed: %s", error)
        return create_response(error=str(error), status_code=503)

    @app.errorhandler(500)
    def internal_server_error(error):
        return create_response(error="Internal Server Error", status_code=500)

    return app


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    app = create_app()
    app.run(debug=True)
