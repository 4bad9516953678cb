from datetime import datetime, timezone
from typing import List, Optional, Sequence

from .models import Flashcard


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_due(card: Flashcard, now: Optional[datetime] = None) -> bool:
    """A card with no review date was never studied and is always due."""
    if card.next_review_date is None:
        return True
    if now is None:
        now = datetime.now(timezone.utc)
    return _as_utc(card.next_review_date) <= _as_utc(now)


def build_review_queue(cards: Sequence[Flashcard], now: Optional[datetime] = None) -> List[Flashcard]:
    """
    Cards to study, in fetch order.

    Only due cards are returned when there are any. When none are due the whole
    set is returned so a non-empty project always has something to study.
    """
    if now is None:
        now = datetime.now(timezone.utc)

    due = [card for card in cards if is_due(card, now)]
    if due:
        return due
    return list(cards)
