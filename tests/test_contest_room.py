import json
import threading
from decimal import Decimal

from conftest import LOBBY_SECONDS, REVEAL_SECONDS, START_SECONDS, make_questions

from contest_engine.core.clock import ManualClock
from contest_engine.core.collaborators import InMemoryQuestionSource, InMemoryStorage
from contest_engine.core.errors import ErrorCode
from contest_engine.core.events import EventBus, EventRecorder, EventType
from contest_engine.core.models import ContestStatus, RoomPhase
from contest_engine.core.services.room_registry import RoomRegistry


def _phase(registry, contest_id):
    return registry.get_snapshot(contest_id).value.phase


def _start_two_player(registry, clock, create_contest, **overrides):
    overrides.setdefault('prize_split', (100,))
    contest_id = create_contest(max_participants=2, **overrides)
    assert registry.join_contest(contest_id, 'alice').ok
    assert registry.join_contest(contest_id, 'bob').ok
    # a full room is scheduled straight away
    assert _phase(registry, contest_id) == RoomPhase.SCHEDULED
    clock.advance(START_SECONDS)
    assert _phase(registry, contest_id) == RoomPhase.QUESTION_ACTIVE
    return contest_id


def test_head_to_head_contest_runs_to_payout(registry, clock, create_contest, storage, recorder):
    contest_id = _start_two_player(registry, clock, create_contest)
    clock.advance(1.0)
    assert registry.submit_answer(contest_id, 'alice', 0, 1).ok
    assert registry.submit_answer(contest_id, 'bob', 0, 0).ok
    # both connected participants answered, so the question locks early
    assert _phase(registry, contest_id) == RoomPhase.REVEAL

    clock.advance(REVEAL_SECONDS)
    snapshot = registry.get_snapshot(contest_id).value
    assert snapshot.phase == RoomPhase.PRIZES_DISTRIBUTED
    assert snapshot.status == ContestStatus.COMPLETED

    result = registry.get_results(contest_id).value
    assert [(e.user_id, e.total_score) for e in result.ranking] == [('alice', 140), ('bob', 0)]
    assert [(p.user_id, p.amount) for p in result.prizes.payouts] == [('alice', Decimal(90)), ('bob', Decimal(0))]
    assert storage.results == [result]
    assert len(storage.answers_for(contest_id)) == 2

    assert recorder.types_for(contest_id) == [
        EventType.PARTICIPANT_JOINED,
        EventType.PARTICIPANT_JOINED,
        EventType.ROOM_SCHEDULED,
        EventType.QUESTION_REVEALED,
        EventType.QUESTION_LOCKED,
        EventType.QUESTION_SCORED,
        EventType.CONTEST_COMPLETED,
        EventType.PRIZES_DISTRIBUTED,
    ]
    scored = [e for e in recorder.events_for(contest_id) if e.type == EventType.QUESTION_SCORED][0]
    assert scored.payload['points'] == {'alice': 140, 'bob': 0}
    sequences = [e.sequence for e in recorder.events_for(contest_id)]
    assert sequences == sorted(sequences) == list(range(1, len(sequences) + 1))


def test_three_player_split(registry, clock, create_contest):
    contest_id = create_contest(entry_fee=10, max_participants=3)
    for user in ('alice', 'bob', 'cara'):
        assert registry.join_contest(contest_id, user).ok
    clock.advance(START_SECONDS + 0.5)
    registry.submit_answer(contest_id, 'cara', 0, 1)
    clock.advance(0.5)
    registry.submit_answer(contest_id, 'alice', 0, 1)
    registry.submit_answer(contest_id, 'bob', 0, 1)
    clock.advance(REVEAL_SECONDS)

    prizes = registry.get_results(contest_id).value.prizes
    assert prizes.net_pool == Decimal(27)
    assert [(p.user_id, p.amount) for p in prizes.payouts] == [
        ('cara', Decimal(14)),
        ('alice', Decimal(8)),
        ('bob', Decimal(5)),
    ]


def test_lobby_countdown_cancels_when_too_few_joined(registry, clock, create_contest, storage, recorder):
    contest_id = create_contest()
    assert registry.join_contest(contest_id, 'solo').ok
    clock.advance(LOBBY_SECONDS)

    snapshot = registry.get_snapshot(contest_id).value
    assert snapshot.phase == RoomPhase.CANCELLED
    assert snapshot.cancel_reason == 'insufficient_participants'
    cancelled = recorder.events_for(contest_id)[-1]
    assert cancelled.type == EventType.CONTEST_CANCELLED
    assert cancelled.payload['refunds'] == [{'user_id': 'solo', 'amount': 50, 'flagged_for_review': False}]
    assert storage.refunds[0][0] == contest_id
    assert [r.user_id for r in storage.refunds[0][1]] == ['solo']
    assert registry.join_contest(contest_id, 'late').error == ErrorCode.CONTEST_NOT_JOINABLE


def test_lobby_countdown_schedules_when_minimum_reached(registry, clock, create_contest):
    contest_id = create_contest(max_participants=5)
    registry.join_contest(contest_id, 'alice')
    registry.join_contest(contest_id, 'bob')
    assert _phase(registry, contest_id) == RoomPhase.WAITING
    clock.advance(LOBBY_SECONDS)
    assert _phase(registry, contest_id) == RoomPhase.SCHEDULED
    # late joiners are still accepted before the first question
    assert registry.join_contest(contest_id, 'cara').ok
    clock.advance(START_SECONDS)
    assert _phase(registry, contest_id) == RoomPhase.QUESTION_ACTIVE
    assert registry.join_contest(contest_id, 'dave').error == ErrorCode.CONTEST_NOT_JOINABLE


def test_disconnected_participant_scores_no_answer_and_stays_ranked(registry, clock, create_contest, storage):
    contest_id = _start_two_player(registry, clock, create_contest, question_count=2)
    registry.submit_answer(contest_id, 'alice', 0, 1)
    registry.submit_answer(contest_id, 'bob', 0, 1)
    clock.advance(REVEAL_SECONDS)
    assert registry.get_snapshot(contest_id).value.question_index == 1

    assert registry.mark_disconnected(contest_id, 'bob').ok
    assert registry.submit_answer(contest_id, 'bob', 1, 1).error == ErrorCode.PARTICIPANT_DISCONNECTED
    registry.mark_reconnected(contest_id, 'bob')
    # the question in progress at disconnect time stays forfeited
    assert registry.submit_answer(contest_id, 'bob', 1, 1).error == ErrorCode.ANSWER_WINDOW_CLOSED

    clock.advance(1.0)
    assert registry.submit_answer(contest_id, 'alice', 1, 1).ok
    clock.advance(5.0 + REVEAL_SECONDS)

    result = registry.get_results(contest_id).value
    assert [e.user_id for e in result.ranking] == ['alice', 'bob']
    bob_q1 = [r for r in storage.answers_for(contest_id) if r.participant_id == 'bob' and r.question_index == 1]
    assert len(bob_q1) == 1
    assert bob_q1[0].selected_index is None
    assert bob_q1[0].points_awarded == 0
    assert bob_q1[0].response_time_ms == 5000


def test_disconnect_triggers_early_lock_when_everyone_else_answered(registry, clock, create_contest):
    contest_id = create_contest(max_participants=3)
    for user in ('alice', 'bob', 'cara'):
        registry.join_contest(contest_id, user)
    clock.advance(START_SECONDS)
    registry.submit_answer(contest_id, 'alice', 0, 1)
    registry.submit_answer(contest_id, 'bob', 0, 2)
    assert _phase(registry, contest_id) == RoomPhase.QUESTION_ACTIVE
    registry.mark_disconnected(contest_id, 'cara')
    assert _phase(registry, contest_id) == RoomPhase.REVEAL


def test_answer_after_deadline_is_rejected_and_scores_nothing(registry, clock, create_contest):
    contest_id = _start_two_player(registry, clock, create_contest)
    deadline = registry.get_snapshot(contest_id).value.deadline
    assert deadline == START_SECONDS + 5

    late = registry.submit_answer(contest_id, 'bob', 0, 1, submitted_at=deadline + 0.001)
    assert late.error == ErrorCode.ANSWER_WINDOW_CLOSED
    assert registry.submit_answer(contest_id, 'alice', 0, 1).ok
    clock.advance(5.0)
    assert _phase(registry, contest_id) == RoomPhase.REVEAL
    assert registry.submit_answer(contest_id, 'bob', 0, 1).error == ErrorCode.ANSWER_WINDOW_CLOSED

    clock.advance(REVEAL_SECONDS)
    ranking = registry.get_results(contest_id).value.ranking
    assert ranking[1].user_id == 'bob'
    assert ranking[1].total_score == 0
    assert ranking[1].correct_answers == 0


def test_submit_answer_rejections(registry, clock, create_contest):
    contest_id = create_contest(max_participants=3, question_count=2)
    registry.join_contest(contest_id, 'alice')
    registry.join_contest(contest_id, 'bob')
    assert registry.submit_answer(contest_id, 'alice', 0, 1).error == ErrorCode.NOT_IN_PROGRESS
    registry.join_contest(contest_id, 'cara')
    clock.advance(START_SECONDS)

    assert registry.submit_answer(contest_id, 'mallory', 0, 1).error == ErrorCode.NOT_A_PARTICIPANT
    assert registry.submit_answer(contest_id, 'alice', 1, 1).error == ErrorCode.NOT_IN_PROGRESS
    assert registry.submit_answer(contest_id, 'alice', 0, 9).error == ErrorCode.INVALID_ANSWER
    assert registry.submit_answer(contest_id, 'alice', -1, 1).error == ErrorCode.INVALID_ANSWER
    assert registry.submit_answer(contest_id, 'alice', 0, True).error == ErrorCode.INVALID_ANSWER
    assert registry.submit_answer(contest_id, 'alice', False, 1).error == ErrorCode.INVALID_ANSWER
    assert registry.submit_answer(contest_id, 'alice', 0, 1).ok
    assert registry.submit_answer(contest_id, 'alice', 0, 2).error == ErrorCode.DUPLICATE_ANSWER
    assert registry.submit_answer('missing', 'alice', 0, 1).error == ErrorCode.CONTEST_NOT_FOUND


def test_join_rejections(registry, create_contest):
    contest_id = create_contest(max_participants=2, min_participants=2, prize_split=(100,))
    assert registry.join_contest(contest_id, '').error == ErrorCode.VALIDATION_ERROR
    assert registry.join_contest(contest_id, 'alice').ok
    assert registry.join_contest(contest_id, 'alice').error == ErrorCode.ALREADY_JOINED
    assert registry.join_contest(contest_id, 'bob').ok
    assert registry.join_contest(contest_id, 'cara').error == ErrorCode.CONTEST_FULL


def test_concurrent_duplicate_submissions_record_one_answer(registry, clock, create_contest, storage):
    contest_id = create_contest(max_participants=40)
    users = [f'user{n}' for n in range(40)]
    for user in users:
        registry.join_contest(contest_id, user)
    clock.advance(START_SECONDS)

    outcomes = []
    outcomes_lock = threading.Lock()

    def submit(user):
        result = registry.submit_answer(contest_id, user, 0, 1)
        with outcomes_lock:
            outcomes.append((user, result.ok, result.error))

    threads = [threading.Thread(target=submit, args=(user,)) for user in users for _ in range(3)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    accepted = [user for user, ok, _ in outcomes if ok]
    assert sorted(accepted) == sorted(users)
    rejected = {error for _, ok, error in outcomes if not ok}
    assert rejected <= {ErrorCode.DUPLICATE_ANSWER, ErrorCode.ANSWER_WINDOW_CLOSED}
    assert _phase(registry, contest_id) == RoomPhase.REVEAL
    assert len(storage.answers_for(contest_id)) == 40


def test_creator_can_cancel_before_start(registry, clock, create_contest, storage):
    contest_id = create_contest()
    registry.join_contest(contest_id, 'alice')
    result = registry.cancel_contest(contest_id)
    assert result.ok
    snapshot = registry.get_snapshot(contest_id).value
    assert snapshot.phase == RoomPhase.CANCELLED
    assert snapshot.cancel_reason == 'cancelled_by_creator'
    assert storage.refunds[0][2] == 'cancelled_by_creator'
    # the pending lobby countdown is void
    clock.advance(LOBBY_SECONDS)
    assert registry.get_snapshot(contest_id).value.cancel_reason == 'cancelled_by_creator'


def test_cannot_cancel_running_contest(registry, clock, create_contest):
    contest_id = _start_two_player(registry, clock, create_contest)
    assert registry.cancel_contest(contest_id).error == ErrorCode.CONTEST_NOT_JOINABLE


def test_short_question_source_cancels_with_internal_error(clock, config, storage, recorder):
    source = InMemoryQuestionSource(default_questions=make_questions(1))
    bus = EventBus()
    bus.subscribe(recorder)
    registry = RoomRegistry(source, storage, clock=clock, config=config, event_bus=bus)
    contest_id = registry.create_contest(
        {'name': 'Short', 'entry_fee': 20, 'max_participants': 2, 'question_count': 3, 'prize_split': [100]}
    ).value
    registry.join_contest(contest_id, 'alice')
    registry.join_contest(contest_id, 'bob')
    clock.advance(START_SECONDS)

    snapshot = registry.get_snapshot(contest_id).value
    assert snapshot.phase == RoomPhase.CANCELLED
    assert snapshot.cancel_reason == 'internal_error'
    _, refunds, reason = storage.refunds[0]
    assert reason == 'internal_error'
    assert all(refund.flagged_for_review for refund in refunds)
    assert recorder.types_for(contest_id)[-1] == EventType.CONTEST_CANCELLED


def test_snapshot_hides_answer_until_reveal(registry, clock, create_contest):
    contest_id = _start_two_player(registry, clock, create_contest)
    active = registry.get_snapshot(contest_id).value.to_dict()
    assert 'correct_option_index' not in active['current_question']
    registry.submit_answer(contest_id, 'alice', 0, 1)
    registry.submit_answer(contest_id, 'bob', 0, 1)
    revealed = registry.get_snapshot(contest_id).value.to_dict()
    assert revealed['current_question']['correct_option_index'] == 1


def test_restore_mid_question_resumes_and_scores_once(registry, clock, create_contest, question_source, config):
    contest_id = _start_two_player(registry, clock, create_contest, question_count=2)
    clock.advance(1.0)
    registry.submit_answer(contest_id, 'alice', 0, 1)
    checkpoint = json.loads(json.dumps(registry.checkpoint(contest_id).value))
    assert checkpoint['phase'] == 'question_active'
    assert checkpoint['remaining_seconds'] == 4.0

    new_clock = ManualClock(start=clock.now())
    new_storage = InMemoryStorage()
    new_recorder = EventRecorder()
    bus = EventBus()
    bus.subscribe(new_recorder)
    restored = RoomRegistry(question_source, new_storage, clock=new_clock, config=config, event_bus=bus)
    assert restored.restore_room(checkpoint).ok
    assert restored.restore_room(checkpoint).error == ErrorCode.CONTEST_EXISTS

    assert restored.submit_answer(contest_id, 'alice', 0, 2).error == ErrorCode.DUPLICATE_ANSWER
    assert restored.submit_answer(contest_id, 'bob', 0, 1).ok
    new_clock.advance(REVEAL_SECONDS)
    restored.submit_answer(contest_id, 'alice', 1, 1)
    restored.submit_answer(contest_id, 'bob', 1, 1)
    new_clock.advance(REVEAL_SECONDS)

    result = restored.get_results(contest_id).value
    alice = result.ranking[0]
    assert alice.user_id == 'alice'
    # answered 1s into the first window, instantly in the second
    assert alice.total_score == 140 + 150
    assert new_recorder.types_for(contest_id).count(EventType.PRIZES_DISTRIBUTED) == 1
    assert new_recorder.events_for(contest_id)[0].sequence > 4


def test_restore_after_payout_does_not_pay_again(registry, clock, create_contest, question_source, config):
    contest_id = _start_two_player(registry, clock, create_contest)
    registry.submit_answer(contest_id, 'alice', 0, 1)
    registry.submit_answer(contest_id, 'bob', 0, 0)
    clock.advance(REVEAL_SECONDS)
    checkpoint = registry.checkpoint(contest_id).value
    assert checkpoint['prizes_computed'] is True

    new_storage = InMemoryStorage()
    new_recorder = EventRecorder()
    bus = EventBus()
    bus.subscribe(new_recorder)
    restored = RoomRegistry(question_source, new_storage, clock=ManualClock(start=clock.now()), config=config, event_bus=bus)
    assert restored.restore_room(checkpoint).ok

    assert new_recorder.events_for(contest_id) == []
    assert new_storage.results == []
    prizes = restored.get_results(contest_id).value.prizes
    assert [p.amount for p in prizes.payouts] == [Decimal(90), Decimal(0)]
