from datetime import timedelta

from flashstudy.review_queue import build_review_queue, is_due


def test_never_reviewed_card_is_due(make_card, now):
    assert is_due(make_card("a"), now)


def test_card_due_exactly_now(make_card, now):
    assert is_due(make_card("a", next_review_date=now), now)
    assert not is_due(make_card("b", next_review_date=now + timedelta(seconds=1)), now)


def test_naive_review_date_is_treated_as_utc(make_card, now):
    naive_past = (now - timedelta(hours=1)).replace(tzinfo=None)
    assert is_due(make_card("a", next_review_date=naive_past), now)


def test_queue_is_due_subset_in_fetch_order(make_card, now):
    cards = [
        make_card("future", next_review_date=now + timedelta(days=2)),
        make_card("new"),
        make_card("past", next_review_date=now - timedelta(days=1)),
        make_card("later", next_review_date=now + timedelta(days=5)),
    ]
    queue = build_review_queue(cards, now)
    assert [card.id for card in queue] == ["new", "past"]


def test_falls_back_to_all_cards_when_none_due(make_card, now):
    cards = [make_card(str(i), next_review_date=now + timedelta(days=i + 1)) for i in range(3)]
    queue = build_review_queue(cards, now)
    assert len(queue) == 3
    assert [card.id for card in queue] == ["0", "1", "2"]


def test_empty_project_gives_empty_queue(now):
    assert build_review_queue([], now) == []
