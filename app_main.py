"""Application entry point for the contest engine server."""

from __future__ import annotations

from contest_engine.config import EngineConfig
from contest_engine.core.collaborators import FileQuestionSource, InMemoryStorage, RetryingStorage
from contest_engine.core.events import EventRecorder
from contest_engine.core.services.room_registry import RoomRegistry
from contest_engine.server.api_server import start_api_server
from contest_engine.utils.logging_config import configure_logging


def main() -> None:
    """Initialize logging, build the room registry, and serve the HTTP API."""
    logger = configure_logging()
    config = EngineConfig.from_env()
    logger.info("Starting contest engine...")

    storage = RetryingStorage(
        InMemoryStorage(),
        max_attempts=config.persistence_max_attempts,
        backoff_seconds=config.persistence_backoff_seconds,
    )
    registry = RoomRegistry(
        question_source=FileQuestionSource(config.questions_file),
        storage=storage,
        config=config,
    )
    recorder = EventRecorder()
    registry.events.subscribe(recorder)
    registry.on_evicted(recorder.forget)

    server_thread = start_api_server(registry, host=config.host, port=config.port, recorder=recorder)
    logger.info("Serving questions from %s on http://%s:%d/", config.questions_file, config.host, config.port)
    try:
        server_thread.join()
    except KeyboardInterrupt:
        logger.info("Shutting down contest engine")
    finally:
        registry.shutdown()
        storage.stop()


if __name__ == "__main__":
    main()
