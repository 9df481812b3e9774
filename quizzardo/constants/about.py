"""Static metadata describing Quizzardo."""

APP_NAME = "Quizzardo"
APP_VERSION = "0.1.0"
APP_ABOUT_TEXT = (
    "Quizzardo runs timed multiple-choice quizzes with free and paid entry, "
    "simple anti-cheat counters and a prize leaderboard."
)
