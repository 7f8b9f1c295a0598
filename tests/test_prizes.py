from decimal import Decimal

import pytest

from contest_engine.core.models import Participant
from contest_engine.core.prizes import compute_prizes, rank_participants

SPLIT = (Decimal(50), Decimal(30), Decimal(20))


def _participant(user_id, score, response_ms, sequence):
    return Participant(
        contest_id='c',
        user_id=user_id,
        joined_at=float(sequence),
        join_sequence=sequence,
        total_score=score,
        total_response_time_ms=response_ms,
    )


def test_head_to_head_is_winner_take_all():
    table = compute_prizes(['alice', 'bob'], Decimal(50), SPLIT)
    assert table.total_pool == Decimal(100)
    assert table.net_pool == Decimal(90)
    assert [p.amount for p in table.payouts] == [Decimal(90), Decimal(0)]


def test_three_way_split_sums_to_net_pool():
    table = compute_prizes(['a', 'b', 'c'], Decimal(10), SPLIT)
    assert table.total_pool == Decimal(30)
    assert table.platform_fee == Decimal(3)
    assert table.net_pool == Decimal(27)
    assert [p.amount for p in table.payouts] == [Decimal(14), Decimal(8), Decimal(5)]
    assert [p.rank for p in table.payouts] == [1, 2, 3]


def test_half_unit_shares_round_up():
    # net 22.5: 11.25 -> 11, 6.75 -> 7, 4.5 -> 5, residue -0.5 to rank 1
    table = compute_prizes([f'u{n}' for n in range(5)], Decimal(5), SPLIT)
    assert table.net_pool == Decimal('22.5')
    assert [p.amount for p in table.payouts] == [Decimal('10.5'), Decimal(7), Decimal(5), Decimal(0), Decimal(0)]


def test_ranks_beyond_split_get_nothing():
    users = [f'user{n}' for n in range(10)]
    table = compute_prizes(users, Decimal(25), SPLIT)
    assert table.net_pool == Decimal(225)
    amounts = [p.amount for p in table.payouts]
    assert amounts[3:] == [Decimal(0)] * 7
    assert sum(amounts) == table.net_pool


@pytest.mark.parametrize('joined', [3, 4, 7, 11, 13, 37, 99, 100])
@pytest.mark.parametrize('fee', ['5', '7', '13', '12.5', '99'])
def test_prize_pool_conservation(joined, fee):
    table = compute_prizes([f'u{n}' for n in range(joined)], Decimal(fee), SPLIT)
    assert table.net_pool == table.total_pool * Decimal('0.9')
    assert sum((p.amount for p in table.payouts), Decimal(0)) == table.net_pool


def test_fewer_than_two_participants_rejected():
    with pytest.raises(ValueError):
        compute_prizes(['alone'], Decimal(10), SPLIT)


def test_ranking_breaks_ties_by_time_then_join_order():
    participants = [
        _participant('late_joiner', 200, 3000, 3),
        _participant('slow', 200, 4000, 1),
        _participant('early_joiner', 200, 3000, 2),
        _participant('leader', 250, 9000, 4),
    ]
    order = [p.user_id for p in rank_participants(participants)]
    assert order == ['leader', 'early_joiner', 'late_joiner', 'slow']
    # same input in any order yields the same standings
    assert [p.user_id for p in rank_participants(reversed(participants))] == order
