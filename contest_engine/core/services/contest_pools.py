"""Catalog of preset public contest pools.

Each category fixes the player count and winner tiers; pools within a
category differ by entry fee. Duels are head-to-head and winner-take-all.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from contest_engine.constants.contest_constants import (
    DEFAULT_PRIZE_SPLIT,
    DEFAULT_QUESTION_COUNT,
    DEFAULT_TIME_PER_QUESTION_SECONDS,
    PLATFORM_FEE_PERCENT,
)
from contest_engine.core.models import ContestSpec, money_to_json


@dataclass(slots=True, frozen=True)
class PoolCategory:
    key: str
    display_name: str
    description: str
    player_count: int
    prize_split: tuple[int, ...]


@dataclass(slots=True, frozen=True)
class ContestPool:
    """A preset contest template."""

    id: str
    name: str
    category: str
    entry_fee: Decimal
    player_count: int
    prize_split: tuple[int, ...]
    question_count: int = DEFAULT_QUESTION_COUNT
    time_per_question_seconds: float = DEFAULT_TIME_PER_QUESTION_SECONDS

    @property
    def total_pool(self) -> Decimal:
        return self.entry_fee * self.player_count

    @property
    def net_prize_pool(self) -> Decimal:
        return self.total_pool * (100 - PLATFORM_FEE_PERCENT) / 100

    def to_spec(self, name: str | None = None, is_private: bool = False, created_by: str | None = None) -> ContestSpec:
        return ContestSpec(
            name=name or self.name,
            entry_fee=self.entry_fee,
            max_participants=self.player_count,
            question_count=self.question_count,
            time_per_question_seconds=self.time_per_question_seconds,
            prize_split=tuple(Decimal(p) for p in self.prize_split),
            is_private=is_private,
            created_by=created_by,
            pool_id=self.id,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "entry_fee": money_to_json(self.entry_fee),
            "player_count": self.player_count,
            "prize_split": list(self.prize_split),
            "question_count": self.question_count,
            "time_per_question_seconds": self.time_per_question_seconds,
            "total_pool": money_to_json(self.total_pool),
            "net_prize_pool": money_to_json(self.net_prize_pool),
        }


POOL_CATEGORIES: dict[str, PoolCategory] = {
    "standard": PoolCategory("standard", "Standard", "10-player contests with balanced competition", 10, DEFAULT_PRIZE_SPLIT),
    "medium": PoolCategory("medium", "Pro", "20-player contests with higher stakes", 20, DEFAULT_PRIZE_SPLIT),
    "large": PoolCategory("large", "Royal", "50-player large tournaments", 50, DEFAULT_PRIZE_SPLIT),
    "duel": PoolCategory("duel", "Duel", "Head-to-head 1v1 direct competition", 2, (100,)),
}

STAKE_TIERS: dict[str, tuple[Decimal, Decimal]] = {
    "micro": (Decimal("10"), Decimal("50")),
    "mid": (Decimal("51"), Decimal("200")),
    "high": (Decimal("201"), Decimal("1000")),
}

_FEE_LADDER: tuple[tuple[str, int], ...] = (
    ("Starter", 10),
    ("Basic", 25),
    ("Regular", 50),
    ("Premium", 100),
    ("Advanced", 250),
    ("Expert", 500),
    ("Master", 1000),
)
_ID_PREFIX = {"standard": "S", "medium": "M", "large": "L", "duel": "D"}
_NAME_PREFIX = {"standard": "", "medium": "Pro ", "large": "Royal ", "duel": "Duel "}


def _build_pools() -> tuple[ContestPool, ...]:
    pools: list[ContestPool] = []
    for key, category in POOL_CATEGORIES.items():
        for position, (tier_name, fee) in enumerate(_FEE_LADDER, start=1):
            name = f"{_NAME_PREFIX[key]}{tier_name}" if _NAME_PREFIX[key] else f"{tier_name} Quiz"
            pools.append(
                ContestPool(
                    id=f"{_ID_PREFIX[key]}{position}",
                    name=name,
                    category=key,
                    entry_fee=Decimal(fee),
                    player_count=category.player_count,
                    prize_split=category.prize_split,
                )
            )
    return tuple(pools)


CONTEST_POOLS: tuple[ContestPool, ...] = _build_pools()


def get_pool(pool_id: str) -> ContestPool | None:
    return next((pool for pool in CONTEST_POOLS if pool.id == pool_id.upper()), None)


def list_pools(category: str | None = None, stake_tier: str | None = None) -> list[ContestPool]:
    pools = list(CONTEST_POOLS)
    if category is not None:
        pools = [pool for pool in pools if pool.category == category]
    if stake_tier is not None:
        low, high = STAKE_TIERS[stake_tier]
        pools = [pool for pool in pools if low <= pool.entry_fee <= high]
    return pools
