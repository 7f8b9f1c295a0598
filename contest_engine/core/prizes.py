"""Ranking and prize-pool distribution for completed contests."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Sequence

from contest_engine.constants.contest_constants import PLATFORM_FEE_PERCENT
from contest_engine.core.models import Participant, Payout, PrizeTable

_HUNDRED = Decimal("100")
_WHOLE_UNIT = Decimal("1")


def ranking_key(participant: Participant) -> tuple[int, int, int]:
    """Higher score first, then faster total response time, then earlier join."""
    return (-participant.total_score, participant.total_response_time_ms, participant.join_sequence)


def rank_participants(participants: Iterable[Participant]) -> list[Participant]:
    """Return participants in final standing order (a deterministic total order)."""
    return sorted(participants, key=ranking_key)


def compute_prizes(
    ranked_user_ids: Sequence[str],
    entry_fee: Decimal,
    prize_split: Sequence[Decimal],
    platform_fee_percent: Decimal = PLATFORM_FEE_PERCENT,
) -> PrizeTable:
    """Split the net pool across ``ranked_user_ids`` (rank 1 first).

    Head-to-head contests are winner-take-all. Each rank's share is rounded half-up to
    whole currency units and the rounding residue goes to rank 1, so the
    payouts always sum to the net pool exactly.
    """
    joined = len(ranked_user_ids)
    if joined < 2:
        raise ValueError("Prizes require at least two participants.")

    total_pool = entry_fee * joined
    platform_fee = total_pool * platform_fee_percent / _HUNDRED
    net_pool = total_pool - platform_fee

    if joined == 2:
        amounts = [net_pool, Decimal("0")]
    else:
        amounts = []
        for rank_index in range(joined):
            if rank_index < len(prize_split):
                share = net_pool * prize_split[rank_index] / _HUNDRED
                amounts.append(share.quantize(_WHOLE_UNIT, rounding=ROUND_HALF_UP))
            else:
                amounts.append(Decimal("0"))
        amounts[0] += net_pool - sum(amounts, Decimal("0"))

    payouts = tuple(
        Payout(user_id=user_id, rank=index + 1, amount=amount)
        for index, (user_id, amount) in enumerate(zip(ranked_user_ids, amounts))
    )
    return PrizeTable(
        total_pool=total_pool,
        platform_fee=platform_fee,
        net_pool=net_pool,
        payouts=payouts,
    )
