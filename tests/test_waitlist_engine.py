"""
Tests for the pure Hold-Offer-Process rules in teesheet/services/waitlist_engine.py.
"""

from datetime import date, datetime, time, timedelta

import pytest

from teesheet.exceptions import InvalidRange, OfferExpired
from teesheet.models.schemas import HoleCount, WaitlistEntry, WaitlistStatus
from teesheet.services import waitlist_engine
from teesheet.services.waitlist_engine import FreedSlot

PLAY_DATE = date(2026, 3, 2)
NOW = datetime(2026, 3, 1, 9, 0)


def make_entry(
    entry_id: str,
    created_at: datetime = NOW,
    desired_start: time = time(5, 30),
    desired_end: time = time(7, 30),
    status: WaitlistStatus = WaitlistStatus.QUEUED,
) -> WaitlistEntry:
    return WaitlistEntry(
        id=entry_id,
        phone_number=f"+88690000{entry_id[-4:]}",
        play_date=PLAY_DATE,
        peak_window_id="peak_a",
        desired_start=desired_start,
        desired_end=desired_end,
        status=status,
        created_at=created_at,
        updated_at=created_at,
    )


@pytest.fixture
def freed() -> FreedSlot:
    return FreedSlot(
        play_date=PLAY_DATE,
        start_time=time(6, 0),
        duration_class=HoleCount.EIGHTEEN,
        booking_id="bk000001",
    )


class TestEnqueue:
    def test_creates_queued_entry(self) -> None:
        entry = waitlist_engine.enqueue(
            phone_number="+886912345678",
            play_date=PLAY_DATE,
            desired_start=time(6, 0),
            desired_end=time(7, 0),
            player_count=3,
            peak_window_id="peak_a",
            now=NOW,
        )

        assert entry.status == WaitlistStatus.QUEUED
        assert entry.created_at == NOW
        assert entry.lock_expiry is None
        assert len(entry.id) == 8

    @pytest.mark.parametrize("end", [time(6, 0), time(5, 50)])
    def test_invalid_range(self, end: time) -> None:
        with pytest.raises(InvalidRange):
            waitlist_engine.enqueue(
                phone_number="+886912345678",
                play_date=PLAY_DATE,
                desired_start=time(6, 0),
                desired_end=end,
                player_count=4,
                peak_window_id=None,
                now=NOW,
            )


class TestCandidateSelection:
    """Tests for FIFO selection among queued entries."""

    def test_fifo_by_created_at(self) -> None:
        e1 = make_entry("wl000001", NOW)
        e2 = make_entry("wl000002", NOW + timedelta(seconds=1))
        e3 = make_entry("wl000003", NOW + timedelta(seconds=2))

        assert waitlist_engine.select_candidate([e3, e2, e1], time(6, 0)) is e1

    def test_ties_broken_by_id(self) -> None:
        a = make_entry("wl00000a", NOW)
        b = make_entry("wl00000b", NOW)

        assert waitlist_engine.select_candidate([b, a], time(6, 0)) is a

    def test_desired_range_is_inclusive(self) -> None:
        entry = make_entry("wl000001", desired_start=time(6, 0), desired_end=time(6, 30))

        assert waitlist_engine.select_candidate([entry], time(6, 0)) is entry
        assert waitlist_engine.select_candidate([entry], time(6, 30)) is entry
        assert waitlist_engine.select_candidate([entry], time(6, 40)) is None

    def test_only_queued_entries_are_eligible(self) -> None:
        entries = [
            make_entry("wl000001", status=WaitlistStatus.NOTIFIED),
            make_entry("wl000002", status=WaitlistStatus.CANCELLED),
            make_entry("wl000003", status=WaitlistStatus.EXPIRED),
        ]

        assert waitlist_engine.eligible_candidates(entries, time(6, 0)) == []


class TestHolds:
    """Tests for placing, expiring and confirming holds."""

    def test_place_hold(self, freed: FreedSlot) -> None:
        entry = waitlist_engine.place_hold(make_entry("wl000001"), freed, NOW)

        assert entry.status == WaitlistStatus.NOTIFIED
        assert entry.lock_expiry == NOW + timedelta(minutes=120)
        assert entry.offered_start == time(6, 0)
        assert entry.freed_booking_id == "bk000001"
        assert waitlist_engine.is_hold_live(entry, NOW + timedelta(minutes=119))

    def test_place_hold_requires_queued(self, freed: FreedSlot) -> None:
        with pytest.raises(OfferExpired):
            waitlist_engine.place_hold(
                make_entry("wl000001", status=WaitlistStatus.EXPIRED), freed, NOW
            )

    def test_hold_lapses_at_lock_expiry(self, freed: FreedSlot) -> None:
        entry = waitlist_engine.place_hold(make_entry("wl000001"), freed, NOW, hold_minutes=30)
        at_expiry = NOW + timedelta(minutes=30)

        assert not waitlist_engine.is_hold_live(entry, at_expiry)
        assert waitlist_engine.effective_status(entry, at_expiry) == WaitlistStatus.EXPIRED
        assert entry.status == WaitlistStatus.NOTIFIED

    def test_expire_lapsed_is_idempotent(self, freed: FreedSlot) -> None:
        held = waitlist_engine.place_hold(make_entry("wl000001"), freed, NOW)
        queued = make_entry("wl000002")
        later = NOW + timedelta(hours=3)

        first = waitlist_engine.expire_lapsed([held, queued], later)
        second = waitlist_engine.expire_lapsed([held, queued], later)

        assert first == [held]
        assert second == []
        assert held.status == WaitlistStatus.EXPIRED
        assert queued.status == WaitlistStatus.QUEUED

    def test_confirm_live_hold(self, freed: FreedSlot) -> None:
        entry = waitlist_engine.place_hold(make_entry("wl000001"), freed, NOW)

        confirmed = waitlist_engine.mark_confirmed(entry, "bk000002", NOW + timedelta(minutes=5))

        assert confirmed.status == WaitlistStatus.CONFIRMED
        assert confirmed.confirmed_booking_id == "bk000002"

    def test_confirm_lapsed_hold_raises(self, freed: FreedSlot) -> None:
        entry = waitlist_engine.place_hold(make_entry("wl000001"), freed, NOW)

        with pytest.raises(OfferExpired, match="expired"):
            waitlist_engine.mark_confirmed(entry, "bk000002", NOW + timedelta(minutes=121))

    def test_confirm_queued_entry_raises(self) -> None:
        with pytest.raises(OfferExpired):
            waitlist_engine.ensure_confirmable(make_entry("wl000001"), NOW)

    def test_freed_slot_of(self, freed: FreedSlot) -> None:
        entry = waitlist_engine.place_hold(make_entry("wl000001"), freed, NOW)

        assert waitlist_engine.freed_slot_of(entry) == freed
        assert waitlist_engine.freed_slot_of(make_entry("wl000002")) is None
