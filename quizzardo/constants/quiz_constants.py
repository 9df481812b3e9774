"""Quiz-related constants shared across the engine, manager and API."""

DEFAULT_TIME_LIMIT_SECONDS: int = 30
DEFAULT_POINTS_PER_QUESTION: int = 10
DEFAULT_VIOLATION_LIMIT: int = 3
DEFAULT_MIN_QUESTIONS_PER_QUIZ: int = 5
MIN_OPTIONS_PER_QUESTION: int = 2
MAX_OPTIONS_PER_QUESTION: int = 6
PRIZE_POSITIONS: int = 3
TIMER_TICK_SECONDS: float = 1.0
FINISHED_SESSION_RETENTION_SECONDS: int = 600
UNKNOWN_PLAYER_NAME: str = "Unknown Player"

SAVE_RESULT_ERROR_MESSAGE: str = "Error saving results"
LOAD_LEADERBOARD_ERROR_MESSAGE: str = "Error loading leaderboard"
