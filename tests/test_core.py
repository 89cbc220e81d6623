"""Tests for the pure booking rules in app.core."""

from datetime import date, datetime
from types import SimpleNamespace

import pytest

from app.core import (
    DraftEffect,
    DraftEvent,
    DraftState,
    advance_draft,
    block_info,
    booking_date_problem,
    check_suspension,
    compute_block_availability,
    days_remaining,
    draft_state_for,
    earliest_bookable_date,
    expand_holidays,
    is_bookable_date,
    is_overdue,
    no_show_cutoff,
    should_suspend,
    suspension_end,
    suspension_expired,
    validate_status_transition,
)
from app.errors import InvalidTransitionError, PatientSuspendedError

ALL_WEEK = range(7)
WEEKDAYS = [0, 1, 2, 3, 4]


def appt(block, status="pending"):
    return SimpleNamespace(time_block=block, status=status)


def patient(is_suspended=False, suspended_until=None, no_show_count=0):
    return SimpleNamespace(
        is_suspended=is_suspended,
        suspended_until=suspended_until,
        no_show_count=no_show_count,
    )


class TestBookableDates:
    """Advance window, weekday and holiday rules."""

    def test_seven_day_window(self):
        """A date exactly advance_days out is bookable; a day earlier is not."""
        today = date(2025, 6, 1)
        assert is_bookable_date(date(2025, 6, 8), today, 7, ALL_WEEK, set())
        assert not is_bookable_date(date(2025, 6, 7), today, 7, ALL_WEEK, set())
        assert booking_date_problem(date(2025, 6, 7), today, 7, ALL_WEEK, set()) == "too_soon"

    def test_past_dates_rejected(self):
        today = date(2025, 6, 1)
        assert booking_date_problem(date(2025, 5, 1), today, 7, ALL_WEEK, set()) == "too_soon"

    def test_weekend_rejected(self):
        """Saturday and Sunday fall outside a Mon-Fri service."""
        today = date(2025, 6, 1)
        assert booking_date_problem(date(2025, 6, 14), today, 7, WEEKDAYS, set()) == "unsupported_weekday"
        assert booking_date_problem(date(2025, 6, 15), today, 7, WEEKDAYS, set()) == "unsupported_weekday"
        assert is_bookable_date(date(2025, 6, 16), today, 7, WEEKDAYS, set())

    def test_holiday_rejected(self):
        today = date(2025, 6, 1)
        holidays = {date(2025, 6, 12)}
        assert booking_date_problem(date(2025, 6, 12), today, 7, WEEKDAYS, holidays) == "holiday"

    def test_reasons_checked_in_order(self):
        """A too-soon holiday on a weekend reports too_soon first."""
        today = date(2025, 6, 1)
        assert booking_date_problem(date(2025, 6, 7), today, 7, WEEKDAYS, {date(2025, 6, 7)}) == "too_soon"

    def test_earliest_date_skips_weekend_and_holiday(self):
        today = date(2025, 6, 1)
        assert earliest_bookable_date(today, 7, ALL_WEEK, set()) == date(2025, 6, 8)
        assert earliest_bookable_date(today, 7, WEEKDAYS, set()) == date(2025, 6, 9)
        assert earliest_bookable_date(today, 7, WEEKDAYS, {date(2025, 6, 9)}) == date(2025, 6, 10)

    def test_earliest_date_none_without_weekdays(self):
        assert earliest_bookable_date(date(2025, 6, 1), 7, [], set()) is None

    def test_expand_recurring_holidays(self):
        rows = [
            SimpleNamespace(holiday_date=date(2024, 12, 25), is_recurring=True),
            SimpleNamespace(holiday_date=date(2025, 6, 12), is_recurring=False),
            SimpleNamespace(holiday_date=date(2024, 2, 29), is_recurring=True),
        ]
        result = expand_holidays(rows, [2025, 2028])
        assert date(2025, 12, 25) in result
        assert date(2028, 12, 25) in result
        assert date(2025, 6, 12) in result
        assert date(2028, 6, 12) not in result
        assert date(2028, 2, 29) in result
        assert date(2024, 2, 29) in result


class TestBlockAvailability:
    """Per-block seat counting."""

    def test_full_am_block(self):
        """15 of 15 AM seats booked leaves nothing; PM with 3 booked has 12 left."""
        existing = [appt("AM") for _ in range(15)] + [appt("PM") for _ in range(3)]
        blocks = compute_block_availability(existing, 15)

        am = block_info(blocks, "AM")
        pm = block_info(blocks, "PM")
        assert am.remaining == 0
        assert am.available is False
        assert pm.remaining == 12
        assert pm.available is True

    def test_cancelled_and_drafts_do_not_count(self):
        existing = [
            appt("AM", "cancelled"),
            appt(None, "draft"),
            appt("AM", "draft"),
            appt("AM", "completed"),
        ]
        am = block_info(compute_block_availability(existing, 2), "AM")
        assert am.booked == 1
        assert am.remaining == 1

    def test_remaining_never_negative(self):
        existing = [appt("PM") for _ in range(5)]
        pm = block_info(compute_block_availability(existing, {"AM": 3, "PM": 3}), "PM")
        assert pm.remaining == 0

    def test_ordered_am_then_pm(self):
        blocks = compute_block_availability([], 50)
        assert [b.block.value for b in blocks] == ["AM", "PM"]
        assert blocks[0].time_range == "8:00 AM - 12:00 PM"
        assert blocks[1].label == "Afternoon"

    def test_unknown_block(self):
        with pytest.raises(KeyError):
            block_info(compute_block_availability([], 50), "EVENING")


class TestDraftLifecycle:
    """Draft state machine."""

    def test_happy_path(self):
        step = advance_draft(DraftState.none, DraftEvent.select_service)
        assert step.state == DraftState.creating
        assert step.effects == (DraftEffect.create_draft,)

        step = advance_draft(step.state, DraftEvent.draft_created)
        assert step.state == DraftState.active

        step = advance_draft(step.state, DraftEvent.confirm)
        assert step.state == DraftState.active
        assert DraftEffect.promote_draft in step.effects

        step = advance_draft(step.state, DraftEvent.promoted)
        assert step.state == DraftState.promoted

    def test_failed_promotion_stays_active(self):
        step = advance_draft(DraftState.active, DraftEvent.promotion_failed)
        assert step.state == DraftState.active
        assert step.effects == (DraftEffect.show_error,)

    def test_creation_failure_returns_to_none(self):
        step = advance_draft(DraftState.creating, DraftEvent.creation_failed)
        assert step.state == DraftState.none

    @pytest.mark.parametrize(
        "event", [DraftEvent.navigate_back, DraftEvent.navigate_away, DraftEvent.expired]
    )
    def test_leaving_discards(self, event):
        step = advance_draft(DraftState.active, event)
        assert step.state == DraftState.discarded
        assert step.effects == (DraftEffect.discard_draft,)

    @pytest.mark.parametrize("state", [DraftState.promoted, DraftState.discarded])
    def test_terminal_states(self, state):
        with pytest.raises(InvalidTransitionError):
            advance_draft(state, DraftEvent.confirm)

    def test_accepts_plain_strings(self):
        assert advance_draft("active", "navigate_back").state == DraftState.discarded

    def test_state_for_rows(self):
        assert draft_state_for(None) == DraftState.none
        assert draft_state_for(SimpleNamespace(status="draft", cancellation_reason=None)) == DraftState.active
        expired = SimpleNamespace(status="cancelled", cancellation_reason="Draft expired")
        assert draft_state_for(expired) == DraftState.discarded
        assert draft_state_for(SimpleNamespace(status="pending", cancellation_reason=None)) == DraftState.promoted


class TestSuspension:
    """Suspension gate."""

    def test_days_remaining(self):
        """Suspended until July 1, checked on June 15: 16 days left."""
        with pytest.raises(PatientSuspendedError) as excinfo:
            check_suspension(patient(True, date(2025, 7, 1), 2), date(2025, 6, 15))
        err = excinfo.value
        assert err.days_remaining == 16
        assert err.suspended_until == date(2025, 7, 1)
        assert err.no_show_count == 2
        assert err.to_dict()["suspended_until"] == "2025-07-01"
        assert err.status_code == 403

    def test_not_suspended_passes(self):
        check_suspension(patient(), date(2025, 6, 15))

    def test_expired_suspension_passes(self):
        p = patient(True, date(2025, 6, 15), 2)
        check_suspension(p, date(2025, 6, 15))
        assert suspension_expired(p, date(2025, 6, 15))
        assert not suspension_expired(p, date(2025, 6, 14))

    def test_days_remaining_clamped(self):
        assert days_remaining(date(2025, 6, 1), date(2025, 6, 10)) == 0


class TestStatusTransitions:
    """Staff-driven status lifecycle."""

    @pytest.mark.parametrize(
        "current,target",
        [
            ("pending", "scheduled"),
            ("scheduled", "checked_in"),
            ("checked_in", "in_progress"),
            ("in_progress", "completed"),
            ("scheduled", "rescheduled"),
            ("pending", "cancelled"),
        ],
    )
    def test_allowed(self, current, target):
        validate_status_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            ("pending", "completed"),
            ("completed", "scheduled"),
            ("cancelled", "pending"),
            ("draft", "pending"),
            ("no_show", "scheduled"),
        ],
    )
    def test_rejected(self, current, target):
        with pytest.raises(InvalidTransitionError):
            validate_status_transition(current, target)

    def test_same_status(self):
        with pytest.raises(InvalidTransitionError, match="same status"):
            validate_status_transition("scheduled", "scheduled")


class TestNoShowPolicy:
    """Overdue detection and suspension length."""

    def test_cutoff_after_grace_period(self):
        now = datetime(2025, 6, 10, 9, 0)
        assert no_show_cutoff(now) == date(2025, 6, 9)

    def test_is_overdue(self):
        now = datetime(2025, 6, 10, 9, 0)
        old = SimpleNamespace(status="scheduled", appointment_date=date(2025, 6, 8))
        yesterday = SimpleNamespace(status="scheduled", appointment_date=date(2025, 6, 9))
        done = SimpleNamespace(status="completed", appointment_date=date(2025, 6, 1))
        assert is_overdue(old, now)
        assert not is_overdue(yesterday, now)
        assert not is_overdue(done, now)

    def test_suspension_end_month_arithmetic(self):
        assert suspension_end(datetime(2025, 6, 1, 9, 0)) == date(2025, 7, 1)
        assert suspension_end(datetime(2025, 1, 31, 9, 0)) == date(2025, 2, 28)
        assert suspension_end(datetime(2025, 12, 15, 9, 0)) == date(2026, 1, 15)

    def test_threshold(self):
        assert not should_suspend(1, 2)
        assert should_suspend(2, 2)
        assert should_suspend(3, 2)
