"""Static metadata describing the contest engine."""

APP_NAME = "Contest Engine"
APP_VERSION = "0.1"
APP_LICENSE = "MIT License"
APP_ABOUT_TEXT = (
    "Contest Engine runs timed, multiplayer quiz contests from the waiting lobby "
    "through scoring, ranking and prize distribution. It is transport agnostic and "
    "ships with a small FastAPI surface for HTTP clients."
)
