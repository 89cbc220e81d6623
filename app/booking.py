# app/booking.py

import logging
from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from . import config
from .core import (
    DraftEvent,
    DraftEffect,
    advance_draft,
    block_info,
    booking_date_problem,
    check_suspension,
    compute_block_availability,
    draft_state_for,
    earliest_bookable_date,
    expand_holidays,
    should_suspend,
    suspension_end,
    suspension_expired,
    validate_status_transition,
)
from .data import (
    ACTIVE_STATUSES,
    DRAFT_EXPIRED_REASON,
    HEALTH_CARD_CATEGORY,
    NO_SHOW_CANDIDATE_STATUSES,
    TIME_BLOCKS,
)
from .errors import (
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotBookableError,
    NotFoundError,
    ValidationError,
)
from .models import (
    Appointment,
    AppointmentStatusHistory,
    AppointmentUpload,
    Holiday,
    Patient,
    Service,
    User,
    utcnow,
)
from .schemas import (
    AppointmentCreate,
    AvailabilityResponse,
    DraftCreate,
    DraftPromote,
    UploadCreate,
    UploadVerify,
)
from .uploads import missing_uploads, validate_upload

logger = logging.getLogger(__name__)

NOT_BOOKABLE_MESSAGES = {
    "too_soon": "Appointments must be booked at least {days} days in advance",
    "unsupported_weekday": "This service is not offered on the selected day",
    "holiday": "The health office is closed on the selected date",
}


def get_service(session: Session, service_id: int) -> Service:
    service = session.get(Service, service_id)
    if service is None:
        raise NotFoundError("Service not found")
    return service


def get_appointment(session: Session, appointment_id: int) -> Appointment:
    appointment = session.get(Appointment, appointment_id)
    if appointment is None:
        raise NotFoundError("Appointment not found")
    return appointment


def load_holidays(session: Session, years) -> set:
    rows = session.exec(select(Holiday)).all()
    return expand_holidays(rows, years)


def appointments_on(session: Session, service_id: int, appointment_date: date) -> List[Appointment]:
    return list(
        session.exec(
            select(Appointment)
            .where(Appointment.service_id == service_id)
            .where(Appointment.appointment_date == appointment_date)
        ).all()
    )


def record_history(
    session: Session,
    appointment: Appointment,
    from_status: Optional[str],
    to_status: str,
    changed_by: Optional[int],
    reason: Optional[str] = None,
    change_type: str = "status_change",
) -> None:
    session.add(
        AppointmentStatusHistory(
            appointment_id=appointment.id,
            change_type=change_type,
            from_status=from_status,
            to_status=to_status,
            changed_by=changed_by,
            reason=reason,
        )
    )


def get_block_availability(
    session: Session, service: Service, appointment_date: date, today: date
) -> AvailabilityResponse:
    holidays = load_holidays(session, {appointment_date.year})
    problem = booking_date_problem(
        appointment_date, today, config.ADVANCE_BOOKING_DAYS, service.weekdays, holidays
    )
    if problem is not None:
        return AvailabilityResponse(
            service_id=service.id,
            date=appointment_date,
            available=False,
            reason=problem,
            total_capacity=0,
            total_booked=0,
            total_remaining=0,
            blocks=[],
        )

    blocks = compute_block_availability(
        appointments_on(session, service.id, appointment_date), config.block_capacity()
    )
    return AvailabilityResponse(
        service_id=service.id,
        date=appointment_date,
        available=any(b.available for b in blocks),
        total_capacity=sum(b.capacity for b in blocks),
        total_booked=sum(b.booked for b in blocks),
        total_remaining=sum(b.remaining for b in blocks),
        blocks=blocks,
    )


def get_earliest_date(session: Session, service: Service, today: date) -> Optional[date]:
    holidays = load_holidays(session, {today.year, today.year + 1})
    return earliest_bookable_date(today, config.ADVANCE_BOOKING_DAYS, service.weekdays, holidays)


def gate_patient(session: Session, patient: Patient, today: date) -> None:
    """Suspension gate, run before anything is written for a new booking."""
    user = session.get(User, patient.user_id)

    if suspension_expired(patient, today):
        patient.is_suspended = False
        patient.suspended_until = None
        if user is not None and user.status == "suspended":
            user.status = "active"
            session.add(user)
        session.add(patient)
        session.commit()
        session.refresh(patient)
        logger.info("Reinstated patient %s after suspension expired", patient.id)

    check_suspension(patient, today)

    if user is None or user.status != "active":
        raise ForbiddenError("Your account must be approved before booking appointments")


def ensure_bookable(session: Session, service: Service, appointment_date: date, today: date) -> None:
    holidays = load_holidays(session, {appointment_date.year})
    problem = booking_date_problem(
        appointment_date, today, config.ADVANCE_BOOKING_DAYS, service.weekdays, holidays
    )
    if problem is not None:
        message = NOT_BOOKABLE_MESSAGES[problem].format(days=config.ADVANCE_BOOKING_DAYS)
        raise NotBookableError(message, reason=problem)


def ensure_no_active_appointment(
    session: Session, patient_id: int, exclude_id: Optional[int] = None
) -> None:
    stmt = (
        select(Appointment)
        .where(Appointment.patient_id == patient_id)
        .where(Appointment.status.in_(ACTIVE_STATUSES))
    )
    if exclude_id is not None:
        stmt = stmt.where(Appointment.id != exclude_id)
    if session.exec(stmt).first() is not None:
        raise ConflictError(
            "You already have an active appointment. Please cancel it before booking a new one."
        )


def claim_seat(session: Session, service_id: int, appointment_date: date, time_block: str) -> int:
    """Check block capacity and return the next queue number in the block.

    Read-then-write: two requests racing for the last seat can both pass.
    """
    existing = appointments_on(session, service_id, appointment_date)
    info = block_info(compute_block_availability(existing, config.block_capacity()), time_block)
    if not info.available:
        raise ConflictError(
            f"The {info.label.lower()} block on {appointment_date.isoformat()} is fully booked. "
            "Please select another date or block.",
            block=time_block,
            remaining=0,
        )

    numbers = [
        a.appointment_number
        for a in existing
        if a.time_block == time_block and a.appointment_number is not None
    ]
    return max(numbers, default=0) + 1


def ensure_requires_appointment(service: Service) -> None:
    if not service.is_active:
        raise ValidationError("This service is not currently available")
    if not service.requires_appointment:
        raise ValidationError("This service does not require an appointment (walk-in only)")


def book_appointment(
    session: Session, patient: Patient, data: AppointmentCreate, today: date
) -> Appointment:
    # 1) Suspension gate before anything else
    gate_patient(session, patient, today)

    # 2) Service checks
    service = get_service(session, data.service_id)
    ensure_requires_appointment(service)
    if service.category == HEALTH_CARD_CATEGORY:
        raise ValidationError(
            "Health card appointments require document upload. Start a draft appointment first."
        )

    # 3) Date and seat checks
    ensure_bookable(session, service, data.appointment_date, today)
    ensure_no_active_appointment(session, patient.id)
    block = data.time_block.value
    queue_number = claim_seat(session, service.id, data.appointment_date, block)

    # 4) Create and persist
    appointment = Appointment(
        patient_id=patient.id,
        service_id=service.id,
        appointment_date=data.appointment_date,
        appointment_time=TIME_BLOCKS[block]["default_time"],
        time_block=block,
        appointment_number=queue_number,
        status="pending",
        reason=data.reason,
    )
    session.add(appointment)
    session.flush()
    record_history(session, appointment, None, "pending", patient.user_id, "Patient booked appointment")
    session.commit()
    session.refresh(appointment)

    logger.info(
        "Booked appointment %s for patient %s on %s %s (queue #%s)",
        appointment.id, patient.id, appointment.appointment_date, block, queue_number,
    )
    return appointment


def _active_drafts(session: Session, patient_id: int) -> List[Appointment]:
    return list(
        session.exec(
            select(Appointment)
            .where(Appointment.patient_id == patient_id)
            .where(Appointment.status == "draft")
        ).all()
    )


def _delete_draft(session: Session, draft: Appointment) -> None:
    for upload in session.exec(
        select(AppointmentUpload).where(AppointmentUpload.appointment_id == draft.id)
    ).all():
        session.delete(upload)
    for entry in session.exec(
        select(AppointmentStatusHistory).where(AppointmentStatusHistory.appointment_id == draft.id)
    ).all():
        session.delete(entry)
    session.delete(draft)


def get_owned_draft(session: Session, patient: Patient, draft_id: int) -> Appointment:
    draft = session.get(Appointment, draft_id)
    if draft is None or draft.patient_id != patient.id:
        raise NotFoundError("Draft appointment not found")
    return draft


def _apply_draft_step(session: Session, draft: Appointment, event: DraftEvent) -> bool:
    """Run ``event`` on a stored draft; True when the draft was discarded."""
    step = advance_draft(draft_state_for(draft), event)
    if DraftEffect.discard_draft not in step.effects:
        return False
    if event == DraftEvent.expired:
        # Expired drafts stay on record as cancelled
        draft.status = "cancelled"
        draft.cancellation_reason = DRAFT_EXPIRED_REASON
        draft.updated_at = utcnow()
        session.add(draft)
        record_history(session, draft, "draft", "cancelled", None, DRAFT_EXPIRED_REASON)
    else:
        _delete_draft(session, draft)
    return True


def expire_draft(session: Session, draft: Appointment) -> bool:
    """Cancel a draft whose anchor window has passed. Does not commit."""
    return _apply_draft_step(session, draft, DraftEvent.expired)


def create_draft(
    session: Session, patient: Patient, data: DraftCreate, today: date, now: datetime
) -> Appointment:
    gate_patient(session, patient, today)

    service = get_service(session, data.service_id)
    ensure_requires_appointment(service)
    if service.category != HEALTH_CARD_CATEGORY:
        raise ValidationError("Only health card services use draft appointments")

    # A patient anchors uploads to one draft at a time
    for stale in _active_drafts(session, patient.id):
        _apply_draft_step(session, stale, DraftEvent.navigate_away)

    draft = Appointment(
        patient_id=patient.id,
        service_id=service.id,
        status="draft",
        card_type=data.card_type.value,
        lab_location=data.lab_location.value,
        draft_expires_at=now + timedelta(minutes=config.DRAFT_EXPIRATION_MINUTES),
    )
    try:
        session.add(draft)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Failed to create draft appointment for patient %s", patient.id)
        raise
    session.refresh(draft)

    logger.info("Created draft appointment %s for patient %s", draft.id, patient.id)
    return draft


def promote_draft(
    session: Session,
    patient: Patient,
    draft_id: int,
    data: DraftPromote,
    today: date,
    now: datetime,
) -> Appointment:
    draft = get_owned_draft(session, patient, draft_id)

    # 1) A draft past its window is cancelled instead of confirmed
    if draft.status == "draft" and draft.draft_expires_at is not None and draft.draft_expires_at < now:
        expired_at = draft.draft_expires_at
        expire_draft(session, draft)
        session.commit()
        logger.info("Draft %s expired at %s before confirmation", draft.id, expired_at)
        raise ConflictError(
            "This draft appointment has expired. Please start a new one.",
            expired_at=expired_at,
        )
    advance_draft(draft_state_for(draft), DraftEvent.confirm)

    # 2) Same checks as a direct booking, plus the required documents
    if not data.reason or not data.reason.strip():
        raise ValidationError("Reason for visit is required")

    gate_patient(session, patient, today)
    service = get_service(session, draft.service_id)
    ensure_bookable(session, service, data.appointment_date, today)
    ensure_no_active_appointment(session, patient.id, exclude_id=draft.id)

    uploaded = session.exec(
        select(AppointmentUpload.file_type).where(AppointmentUpload.appointment_id == draft.id)
    ).all()
    missing = missing_uploads(draft.lab_location, uploaded)
    if missing:
        raise ValidationError(
            "Missing required documents: " + ", ".join(missing), missing=missing
        )

    block = data.time_block.value
    queue_number = claim_seat(session, service.id, data.appointment_date, block)

    # 3) Same row becomes the pending appointment
    draft.status = "pending"
    draft.appointment_date = data.appointment_date
    draft.appointment_time = TIME_BLOCKS[block]["default_time"]
    draft.time_block = block
    draft.appointment_number = queue_number
    draft.reason = data.reason
    draft.draft_expires_at = None
    draft.updated_at = utcnow()
    session.add(draft)
    record_history(session, draft, "draft", "pending", patient.user_id, "Patient confirmed draft appointment")
    session.commit()
    session.refresh(draft)

    logger.info(
        "Promoted draft %s to pending on %s %s (queue #%s)",
        draft.id, draft.appointment_date, draft.time_block, draft.appointment_number,
    )
    return draft


def discard_draft(
    session: Session, patient: Patient, draft_id: int, event: DraftEvent = DraftEvent.navigate_back
) -> None:
    draft = get_owned_draft(session, patient, draft_id)
    if not _apply_draft_step(session, draft, event):
        raise InvalidTransitionError(f"'{DraftEvent(event).value}' does not discard a draft")
    session.commit()
    logger.info("Discarded draft %s for patient %s (%s)", draft_id, patient.id, DraftEvent(event).value)


def cancel_appointment(
    session: Session, appointment: Appointment, changed_by: int, reason: Optional[str] = None
) -> Appointment:
    if appointment.status == "cancelled":
        raise ConflictError("Appointment already cancelled")
    if appointment.status == "draft":
        raise InvalidTransitionError("Draft appointments are discarded, not cancelled")
    if appointment.status not in ACTIVE_STATUSES:
        raise InvalidTransitionError(f"Cannot cancel an appointment that is '{appointment.status}'")

    previous = appointment.status
    appointment.status = "cancelled"
    appointment.cancellation_reason = reason or "Cancelled"
    appointment.updated_at = utcnow()
    session.add(appointment)
    record_history(session, appointment, previous, "cancelled", changed_by, reason)
    session.commit()
    session.refresh(appointment)
    logger.info("Cancelled appointment %s (was %s)", appointment.id, previous)
    return appointment


def transition_status(
    session: Session,
    appointment: Appointment,
    target: str,
    changed_by: int,
    reason: Optional[str] = None,
) -> Appointment:
    validate_status_transition(appointment.status, target)

    # One consultation at a time per service per day
    if target == "in_progress":
        busy = session.exec(
            select(Appointment)
            .where(Appointment.service_id == appointment.service_id)
            .where(Appointment.appointment_date == appointment.appointment_date)
            .where(Appointment.status == "in_progress")
            .where(Appointment.id != appointment.id)
        ).first()
        if busy is not None:
            raise ConflictError(
                "Another consultation is already in progress",
                current_in_progress=busy.appointment_number,
            )

    previous = appointment.status
    appointment.status = target
    if target in ("cancelled", "rescheduled"):
        appointment.cancellation_reason = reason
    appointment.updated_at = utcnow()
    session.add(appointment)
    change_type = "reschedule" if target == "rescheduled" else "status_change"
    record_history(session, appointment, previous, target, changed_by, reason, change_type)
    session.commit()
    session.refresh(appointment)
    logger.info("Appointment %s moved %s -> %s", appointment.id, previous, target)
    return appointment


def apply_no_show(
    session: Session, appointment: Appointment, now: datetime, changed_by: Optional[int], reason: str
) -> Tuple[Patient, bool]:
    """Mark one appointment as no-show and apply the suspension policy.

    Does not commit. Returns the patient and whether it was suspended.
    """
    previous = appointment.status
    appointment.status = "no_show"
    appointment.updated_at = utcnow()
    session.add(appointment)

    patient = session.get(Patient, appointment.patient_id)
    patient.no_show_count += 1
    patient.last_no_show_at = now

    suspended = False
    if should_suspend(patient.no_show_count, config.NO_SHOW_SUSPENSION_THRESHOLD):
        patient.is_suspended = True
        patient.suspended_until = suspension_end(now, config.SUSPENSION_MONTHS)
        user = session.get(User, patient.user_id)
        if user is not None:
            user.status = "suspended"
            session.add(user)
        suspended = True
    session.add(patient)

    record_history(session, appointment, previous, "no_show", changed_by, reason, "no_show")
    return patient, suspended


def mark_no_show(
    session: Session, appointment: Appointment, changed_by: int, now: datetime
) -> Appointment:
    if appointment.status not in NO_SHOW_CANDIDATE_STATUSES:
        raise InvalidTransitionError(
            f"Only scheduled or checked-in appointments can be marked as no-show, not '{appointment.status}'"
        )
    patient, suspended = apply_no_show(
        session, appointment, now, changed_by, "Marked as no-show by staff"
    )
    session.commit()
    session.refresh(appointment)
    logger.info(
        "Appointment %s marked no-show (patient %s count=%s suspended=%s)",
        appointment.id, patient.id, patient.no_show_count, suspended,
    )
    return appointment


def add_upload(
    session: Session, appointment: Appointment, uploaded_by: int, data: UploadCreate
) -> AppointmentUpload:
    if appointment.status not in ("draft", "pending"):
        raise InvalidTransitionError(
            f"Documents can only be attached to draft or pending appointments, not '{appointment.status}'"
        )
    validate_upload(data.file_type.value, data.mime_type, data.file_size_bytes)

    upload = AppointmentUpload(
        appointment_id=appointment.id,
        file_type=data.file_type.value,
        file_name=data.file_name,
        mime_type=data.mime_type,
        file_size_bytes=data.file_size_bytes,
        storage_path=data.storage_path,
        uploaded_by_id=uploaded_by,
    )
    session.add(upload)
    session.commit()
    session.refresh(upload)
    return upload


def verify_upload(
    session: Session, upload: AppointmentUpload, verified_by: int, data: UploadVerify
) -> AppointmentUpload:
    if data.verification_status.value == "rejected" and not data.verification_notes:
        raise ValidationError("A note is required when rejecting a document")
    upload.verification_status = data.verification_status.value
    upload.verification_notes = data.verification_notes
    upload.verified_by_id = verified_by
    upload.verified_at = utcnow()
    session.add(upload)
    session.commit()
    session.refresh(upload)
    return upload


