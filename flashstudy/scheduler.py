from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from .models import Difficulty, EASE_FACTOR_MIN, EASE_FACTOR_MAX

# Base interval (days) per judgment
INTERVAL_DAYS = {
    Difficulty.EASY: 4,
    Difficulty.GOOD: 2,
    Difficulty.HARD: 1,
}

EASE_STEP = 0.15


@dataclass(frozen=True)
class ReviewSchedule:
    ease_factor: float
    next_review_date: datetime


def adjust_ease_factor(ease_factor: float, difficulty: Difficulty) -> float:
    if difficulty == Difficulty.EASY:
        ease_factor = ease_factor + EASE_STEP
    elif difficulty == Difficulty.HARD:
        ease_factor = ease_factor - EASE_STEP
    ease_factor = round(ease_factor, 2)
    return min(max(ease_factor, EASE_FACTOR_MIN), EASE_FACTOR_MAX)


def compute_next_review(
    ease_factor: float,
    difficulty: Union[Difficulty, str],
    now: Optional[datetime] = None,
    scale_by_ease: bool = False,
) -> ReviewSchedule:
    """
    Fixed-interval spaced repetition step.

    Args:
        ease_factor: Current ease factor of the card (1.3 - 3.0).
        difficulty: The user's recall judgment ("easy", "good" or "hard").
        now: Judgment time. Defaults to the current UTC time.
        scale_by_ease: Multiply the base interval by the updated ease factor.
                       Off by default: the interval depends on the judgment only
                       and the ease factor is tracked for later use.

    Returns:
        ReviewSchedule with the new ease factor and next review timestamp.
    """
    difficulty = Difficulty(difficulty)
    if now is None:
        now = datetime.now(timezone.utc)

    new_ease = adjust_ease_factor(ease_factor, difficulty)

    interval = INTERVAL_DAYS[difficulty]
    if scale_by_ease:
        interval = interval * new_ease

    return ReviewSchedule(
        ease_factor=new_ease,
        next_review_date=now + timedelta(days=interval),
    )
