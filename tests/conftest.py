import os
import sys

import pytest

# Ensure the project root (containing the `contest_engine` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from contest_engine.config import EngineConfig
from contest_engine.core.clock import ManualClock
from contest_engine.core.collaborators import InMemoryQuestionSource, InMemoryStorage
from contest_engine.core.events import EventBus, EventRecorder
from contest_engine.core.models import ContestSpec, Question
from contest_engine.core.services.room_registry import RoomRegistry

LOBBY_SECONDS = 10.0
START_SECONDS = 3.0
REVEAL_SECONDS = 3.0
EVICTION_SECONDS = 30.0


def make_questions(count=3):
    # correct answer is always option 1
    return [
        Question(
            id=f'q-{n}',
            text=f'Question {n}?',
            options=('wrong', 'right', 'also wrong', 'nope'),
            correct_option_index=1,
        )
        for n in range(1, count + 1)
    ]


def make_spec(**overrides):
    values = dict(
        name='Friday Night Trivia',
        entry_fee=50,
        max_participants=3,
        question_count=1,
        time_per_question_seconds=5,
        prize_split=(50, 30, 20),
    )
    values.update(overrides)
    return ContestSpec.from_dict(values)


@pytest.fixture()
def clock():
    return ManualClock(start=0.0)


@pytest.fixture()
def config():
    return EngineConfig(
        lobby_countdown_seconds=LOBBY_SECONDS,
        start_countdown_seconds=START_SECONDS,
        reveal_seconds=REVEAL_SECONDS,
        eviction_grace_seconds=EVICTION_SECONDS,
    )


@pytest.fixture()
def question_source():
    return InMemoryQuestionSource(default_questions=make_questions(5))


@pytest.fixture()
def storage():
    return InMemoryStorage()


@pytest.fixture()
def recorder():
    return EventRecorder()


@pytest.fixture()
def registry(question_source, storage, clock, config, recorder):
    bus = EventBus()
    bus.subscribe(recorder)
    reg = RoomRegistry(question_source, storage, clock=clock, config=config, event_bus=bus)
    reg.on_evicted(recorder.forget)
    yield reg
    reg.shutdown()


@pytest.fixture()
def create_contest(registry):
    def _create(**overrides):
        result = registry.create_contest(make_spec(**overrides))
        assert result.ok, result.message
        return result.value

    return _create
