from contest_engine.core.models import AnswerRecord, Question
from contest_engine.core.scoring import (
    clamp_response_time,
    score,
    score_question,
    score_record,
    speed_bonus,
    time_limit_ms,
)

QUESTION = Question(id='q', text='2 + 2?', options=('3', '4', '5'), correct_option_index=1)


def _record(selected, response_time_ms, participant='alice'):
    return AnswerRecord(
        participant_id=participant,
        question_index=0,
        selected_index=selected,
        response_time_ms=response_time_ms,
    )


def test_correct_answer_earns_base_plus_speed_bonus():
    # 1000ms of a 5000ms window: bonus = round(100 * 0.5 * 0.8) = 40
    assert score(QUESTION, _record(1, 1000), 5000) == 140


def test_wrong_and_missing_answers_score_zero():
    assert score(QUESTION, _record(0, 100), 5000) == 0
    assert score(QUESTION, _record(None, 5000), 5000) == 0


def test_speed_bonus_bounds():
    assert speed_bonus(0, 5000) == 50
    assert speed_bonus(5000, 5000) == 0
    assert speed_bonus(9000, 5000) == 0
    assert speed_bonus(100, 0) == 0


def test_speed_bonus_rounds_to_nearest_point():
    # 100 * 0.5 * (1 - 1234/6000) = 39.716...
    assert speed_bonus(1234, 6000) == 40


def test_speed_bonus_rounds_half_points_up():
    # 100 * 0.5 * (1 - 4500/6000) = 12.5
    assert speed_bonus(4500, 6000) == 13
    assert score(QUESTION, _record(1, 4500), 6000) == 113


def test_clamp_response_time():
    assert clamp_response_time(-250, 5000) == 0
    assert clamp_response_time(1999.6, 5000) == 2000
    assert clamp_response_time(7000, 5000) == 5000


def test_time_limit_prefers_question_override():
    assert time_limit_ms(QUESTION, 6.0) == 6000
    custom = Question(id='c', text='t', options=('a', 'b'), correct_option_index=0, time_limit_seconds=2.5)
    assert time_limit_ms(custom, 6.0) == 2500


def test_scoring_is_idempotent():
    record = _record(1, 2500)
    first = score_record(QUESTION, record, 5000)
    second = score_record(QUESTION, record, 5000)
    assert first == second
    assert first.points_awarded == 125
    assert first.is_correct is True
    # input untouched, scored copy returned unchanged when scored again
    assert record.points_awarded is None
    assert score_record(QUESTION, first, 5000) is first


def test_score_question_scores_everyone():
    records = {
        'alice': _record(1, 0, 'alice'),
        'bob': _record(2, 10, 'bob'),
        'cara': _record(None, 5000, 'cara'),
    }
    scored = score_question(QUESTION, records, 5000)
    assert {pid: r.points_awarded for pid, r in scored.items()} == {'alice': 150, 'bob': 0, 'cara': 0}
    assert not scored['cara'].is_correct
