import random
from datetime import date

import pytest

from core.fusion import clean_comment, contiguous_runs, fuse_personal_notes, fuse_platform_bookings, parse_payout
from core.models import CalendarFragment, NoteFragment, PayoutFragment, ReservationType


@pytest.mark.parametrize("text, expected", [
    ("1 234,50 €", 1234.50),
    ("250,75 €", 250.75),
    ("1200.00", 1200.00),
    ("€1,234.56", 1234.56),
    ("n/a", None),
    ("", None),
    (None, None),
])
def test_parse_payout(text, expected):
    assert parse_payout(text) == expected


def abc123_fragments():
    calendar = [
        CalendarFragment("ABC123", "gree", date(2025, 7, 10), "Marie", None, 2),
        CalendarFragment("ABC123", "gree", date(2025, 7, 11), None, "Durand", 3),
        CalendarFragment("ABC123", "gree", date(2025, 7, 12)),
    ]
    payouts = [PayoutFragment("ABC123", "450,00 €", "accepted")]
    return calendar, payouts


def test_platform_booking_is_fused_by_confirmation_code():
    calendar, payouts = abc123_fragments()

    (res,) = fuse_platform_bookings(calendar, payouts)

    assert res.type == ReservationType.PLATFORM
    assert res.property_id == "gree"
    assert (res.check_in, res.check_out, res.nights) == (date(2025, 7, 10), date(2025, 7, 13), 3)
    assert res.payout_amount == 450.00
    assert res.guest_name == "Marie Durand"
    assert res.guest_count == 3
    assert res.status_text == "accepted"


def test_platform_fusion_is_order_independent():
    calendar, payouts = abc123_fragments()
    calendar.append(CalendarFragment("ABC123", "gree", date(2025, 7, 11), "Autre", "Nom", 1))
    expected = fuse_platform_bookings(calendar, payouts)

    rng = random.Random(7)
    for _ in range(10):
        shuffled = calendar[:]
        rng.shuffle(shuffled)
        assert fuse_platform_bookings(shuffled, payouts) == expected


def test_night_count_keeps_gaps_visible():
    calendar = [CalendarFragment("GAP", "gree", date(2025, 7, d)) for d in (10, 11, 13)]

    (res,) = fuse_platform_bookings(calendar)

    assert (res.check_in, res.check_out, res.nights) == (date(2025, 7, 10), date(2025, 7, 14), 3)


def test_payout_without_calendar_days_is_dropped():
    assert fuse_platform_bookings([], [PayoutFragment("LONELY", "100 €", "accepted")]) == []


def test_unparsable_payout_is_null_not_error():
    calendar = [CalendarFragment("X", "gree", date(2025, 7, 10))]

    (res,) = fuse_platform_bookings(calendar, [PayoutFragment("X", "n.d.", None)])

    assert res.payout_amount is None


def test_contiguous_runs():
    days = [date(2025, 6, 5), date(2025, 6, 1), date(2025, 6, 3), date(2025, 6, 2)]

    assert contiguous_runs(days) == [(date(2025, 6, 1), date(2025, 6, 3)), (date(2025, 6, 5), date(2025, 6, 5))]
    assert contiguous_runs([]) == []


def test_identical_notes_are_compressed_into_runs():
    notes = [NoteFragment("gree", date(2025, 6, d), "Famille Martin") for d in (1, 2, 3, 5)]

    fused = fuse_personal_notes(notes)

    assert [(r.check_in, r.check_out, r.nights) for r in fused] == [
        (date(2025, 6, 1), date(2025, 6, 4), 3),
        (date(2025, 6, 5), date(2025, 6, 6), 1),
    ]
    assert all(r.type == ReservationType.PERSONAL and r.comment == "Famille Martin" for r in fused)


def test_different_texts_are_never_merged():
    notes = [
        NoteFragment("gree", date(2025, 6, 1), "Famille Martin"),
        NoteFragment("gree", date(2025, 6, 2), "Famille  Martin"),
    ]

    fused = fuse_personal_notes(notes)

    assert [(r.check_in, r.comment) for r in fused] == [
        (date(2025, 6, 1), "Famille Martin"),
        (date(2025, 6, 2), "Famille  Martin"),
    ]


def test_clean_comment():
    assert clean_comment("Arrivée tard\nclé  sous\r\nle pot ") == "Arrivée tard clé sous le pot"
    assert clean_comment("   ") is None
    assert clean_comment(None) is None
