# app/core.py

import calendar
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Dict, Iterable, List, Mapping, NamedTuple, Optional, Set, Tuple, Union

from .data import (
    DRAFT_EXPIRED_REASON,
    NO_SHOW_CANDIDATE_STATUSES,
    TIME_BLOCKS,
)
from .errors import InvalidTransitionError, PatientSuspendedError
from .schemas import BlockAvailability


def booking_date_problem(
    candidate: date,
    today: date,
    advance_days: int,
    service_weekdays: Iterable[int],
    holidays: Set[date],
) -> Optional[str]:
    """Return why ``candidate`` cannot be booked, or None if it can.

    Reasons are checked in order: ``too_soon``, ``unsupported_weekday``,
    ``holiday``. Weekdays use ``date.weekday()`` numbering (0 = Monday).
    """
    if candidate < today + timedelta(days=advance_days):
        return "too_soon"
    if candidate.weekday() not in set(service_weekdays):
        return "unsupported_weekday"
    if candidate in holidays:
        return "holiday"
    return None


def is_bookable_date(
    candidate: date,
    today: date,
    advance_days: int,
    service_weekdays: Iterable[int],
    holidays: Set[date],
) -> bool:
    return booking_date_problem(candidate, today, advance_days, service_weekdays, holidays) is None


def earliest_bookable_date(
    today: date,
    advance_days: int,
    service_weekdays: Iterable[int],
    holidays: Set[date],
    horizon_days: int = 366,
) -> Optional[date]:
    """First bookable date on or after ``today + advance_days``.

    Returns None when nothing inside ``horizon_days`` qualifies (e.g. a
    service offered on no weekday).
    """
    weekdays = set(service_weekdays)
    candidate = today + timedelta(days=advance_days)
    last = today + timedelta(days=horizon_days)
    while candidate <= last:
        if is_bookable_date(candidate, today, advance_days, weekdays, holidays):
            return candidate
        candidate += timedelta(days=1)
    return None


def expand_holidays(rows: Iterable, years: Iterable[int]) -> Set[date]:
    """Flatten holiday rows into a set of dates.

    Rows need ``holiday_date`` and ``is_recurring``. A recurring holiday
    repeats on the same month/day in each of ``years``; Feb 29 only lands
    on leap years.
    """
    result: Set[date] = set()
    years = list(years)
    for row in rows:
        result.add(row.holiday_date)
        if not row.is_recurring:
            continue
        for year in years:
            try:
                result.add(row.holiday_date.replace(year=year))
            except ValueError:
                continue
    return result


# Statuses that never occupy a seat in a block
UNCOUNTED_STATUSES = ("cancelled", "draft")


def compute_block_availability(
    existing_appointments: Iterable,
    block_capacity: Union[int, Mapping[str, int]],
) -> List[BlockAvailability]:
    """Remaining seats per time block for one date.

    ``existing_appointments`` are the appointments already on that date
    (records with ``time_block`` and ``status``). Cancelled appointments and
    drafts do not take a seat. ``remaining`` is clamped at zero.
    """
    if isinstance(block_capacity, int):
        capacities = {block: block_capacity for block in TIME_BLOCKS}
    else:
        capacities = dict(block_capacity)

    booked: Dict[str, int] = {block: 0 for block in TIME_BLOCKS}
    for appt in existing_appointments:
        if appt.status in UNCOUNTED_STATUSES:
            continue
        if appt.time_block in booked:
            booked[appt.time_block] += 1

    result = []
    for block, meta in TIME_BLOCKS.items():
        capacity = capacities.get(block, 0)
        remaining = max(0, capacity - booked[block])
        result.append(
            BlockAvailability(
                block=block,
                label=meta["label"],
                time_range=meta["time_range"],
                capacity=capacity,
                booked=booked[block],
                remaining=remaining,
                available=remaining > 0,
            )
        )
    return result


def block_info(availability: List[BlockAvailability], block: str) -> BlockAvailability:
    for info in availability:
        if info.block == block:
            return info
    raise KeyError(block)


class DraftState(str, Enum):
    none = "none"
    creating = "creating"
    active = "active"
    promoted = "promoted"
    discarded = "discarded"


class DraftEvent(str, Enum):
    select_service = "select_service"
    draft_created = "draft_created"
    creation_failed = "creation_failed"
    confirm = "confirm"
    promoted = "promoted"
    promotion_failed = "promotion_failed"
    navigate_back = "navigate_back"
    navigate_away = "navigate_away"
    expired = "expired"


class DraftEffect(str, Enum):
    create_draft = "create_draft"
    promote_draft = "promote_draft"
    discard_draft = "discard_draft"
    show_error = "show_error"


class DraftTransition(NamedTuple):
    state: DraftState
    effects: Tuple[DraftEffect, ...]


_DRAFT_TRANSITIONS: Dict[Tuple[DraftState, DraftEvent], DraftTransition] = {
    (DraftState.none, DraftEvent.select_service): DraftTransition(
        DraftState.creating, (DraftEffect.create_draft,)
    ),
    (DraftState.creating, DraftEvent.draft_created): DraftTransition(DraftState.active, ()),
    (DraftState.creating, DraftEvent.creation_failed): DraftTransition(
        DraftState.none, (DraftEffect.show_error,)
    ),
    (DraftState.creating, DraftEvent.navigate_away): DraftTransition(
        DraftState.discarded, (DraftEffect.discard_draft,)
    ),
    (DraftState.active, DraftEvent.confirm): DraftTransition(
        DraftState.active, (DraftEffect.promote_draft,)
    ),
    (DraftState.active, DraftEvent.promotion_failed): DraftTransition(
        DraftState.active, (DraftEffect.show_error,)
    ),
    (DraftState.active, DraftEvent.promoted): DraftTransition(DraftState.promoted, ()),
    (DraftState.active, DraftEvent.navigate_back): DraftTransition(
        DraftState.discarded, (DraftEffect.discard_draft,)
    ),
    (DraftState.active, DraftEvent.navigate_away): DraftTransition(
        DraftState.discarded, (DraftEffect.discard_draft,)
    ),
    (DraftState.active, DraftEvent.expired): DraftTransition(
        DraftState.discarded, (DraftEffect.discard_draft,)
    ),
}


def advance_draft(state: DraftState, event: DraftEvent) -> DraftTransition:
    """Next draft state and the side effects the caller must perform."""
    try:
        return _DRAFT_TRANSITIONS[(DraftState(state), DraftEvent(event))]
    except KeyError:
        raise InvalidTransitionError(
            f"Cannot apply '{DraftEvent(event).value}' to a draft in state '{DraftState(state).value}'",
            state=DraftState(state).value,
            event=DraftEvent(event).value,
        ) from None


def draft_state_for(appointment) -> DraftState:
    """Map a persisted appointment row onto the draft lifecycle."""
    if appointment is None:
        return DraftState.none
    if appointment.status == "draft":
        return DraftState.active
    if appointment.status == "cancelled" and appointment.cancellation_reason == DRAFT_EXPIRED_REASON:
        return DraftState.discarded
    return DraftState.promoted


def days_remaining(suspended_until: date, today: date) -> int:
    return max(0, (suspended_until - today).days)


def check_suspension(patient, today: date) -> None:
    """Raise PatientSuspendedError if the patient may not book today.

    A suspension whose end date has been reached no longer blocks; use
    ``suspension_expired`` to decide whether to reinstate the account.
    """
    if not patient.is_suspended:
        return
    if patient.suspended_until is not None and patient.suspended_until <= today:
        return
    until = patient.suspended_until or today
    raise PatientSuspendedError(
        suspended_until=until,
        no_show_count=patient.no_show_count,
        days_remaining=days_remaining(until, today),
    )


def suspension_expired(patient, today: date) -> bool:
    return bool(
        patient.is_suspended
        and patient.suspended_until is not None
        and patient.suspended_until <= today
    )


STATUS_TRANSITIONS: Dict[str, Tuple[str, ...]] = {
    "pending": ("scheduled", "cancelled"),
    "scheduled": ("checked_in", "cancelled", "rescheduled"),
    "checked_in": ("in_progress", "cancelled", "rescheduled"),
    "in_progress": ("completed", "cancelled", "rescheduled"),
}


def validate_status_transition(current: str, target: str) -> None:
    if current == target:
        raise InvalidTransitionError(
            f"Cannot transition to the same status. Appointment is already '{current}'.",
            current=current,
        )
    allowed = STATUS_TRANSITIONS.get(current, ())
    if target not in allowed:
        raise InvalidTransitionError(
            f"Invalid status transition from '{current}' to '{target}'",
            current=current,
            allowed=list(allowed),
        )


def no_show_cutoff(now: datetime, grace_hours: int = 24) -> date:
    """Appointments dated before this day are overdue."""
    return (now - timedelta(hours=grace_hours)).date()


def is_overdue(appointment, now: datetime, grace_hours: int = 24) -> bool:
    return (
        appointment.status in NO_SHOW_CANDIDATE_STATUSES
        and appointment.appointment_date is not None
        and appointment.appointment_date < no_show_cutoff(now, grace_hours)
    )


def add_months(day: date, months: int) -> date:
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return day.replace(year=year, month=month, day=min(day.day, last_day))


def suspension_end(now: datetime, months: int = 1) -> date:
    return add_months(now.date(), months)


def should_suspend(no_show_count: int, threshold: int) -> bool:
    return no_show_count >= threshold
