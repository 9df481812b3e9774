"""Application entry point for the Quizzardo API service."""

from __future__ import annotations

from quizzardo.config.settings import load_runtime_config
from quizzardo.core.quiz_manager import QuizManager
from quizzardo.server.api_server import run_api_server
from quizzardo.utils.logging_config import configure_logging


def main() -> None:
    """Initialize logging, build the quiz manager and serve the API."""
    config = load_runtime_config()
    logger = configure_logging(config.log_level)
    logger.info("Starting Quizzardo…")

    quiz_manager = QuizManager()
    try:
        run_api_server(
            quiz_manager=quiz_manager,
            host=config.host,
            port=config.port,
            log_level=config.log_level,
        )
    finally:
        quiz_manager.shutdown()


if __name__ == "__main__":
    main()
