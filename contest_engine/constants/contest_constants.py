"""Contest economics and scoring constants shared across the core layers."""

from decimal import Decimal

BASE_POINTS: int = 100
SPEED_BONUS_RATIO: Decimal = Decimal("0.5")

MIN_ENTRY_FEE: Decimal = Decimal("5")
MIN_PARTICIPANTS: int = 2
MAX_PARTICIPANTS: int = 100
PLATFORM_FEE_PERCENT: Decimal = Decimal("10")
DEFAULT_PRIZE_SPLIT: tuple[int, ...] = (50, 30, 20)

PRIVATE_CODE_LENGTH: int = 6
PRIVATE_CODE_ALPHABET: str = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"

DEFAULT_TIME_PER_QUESTION_SECONDS: float = 6.0
DEFAULT_QUESTION_COUNT: int = 10

CANCEL_REASON_INSUFFICIENT_PARTICIPANTS: str = "insufficient_participants"
CANCEL_REASON_INTERNAL_ERROR: str = "internal_error"
CANCEL_REASON_CREATOR: str = "cancelled_by_creator"

# Achievement thresholds
SPEED_DEMON_SHARE: float = 0.8
COMEBACK_MIN_EARLY_WRONG: int = 2
COMEBACK_MIN_LATE_CORRECT: int = 3
CONSISTENCY_MAX_SPREAD_MS: int = 2000
LAST_SECOND_WINDOW_MS: int = 1000
LAST_SECOND_MIN_CORRECT: int = 3
