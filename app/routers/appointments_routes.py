# app/routers/appointments_routes.py

from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlmodel import Session, select

from app.db import get_session
from app.models import Appointment, AppointmentStatusHistory, AppointmentUpload, Patient
from app.schemas import (
    AppointmentCreate,
    AppointmentPublic,
    AppointmentStatus,
    AvailabilityResponse,
    CancelRequest,
    CleanupResult,
    DraftCreate,
    DraftPromote,
    EarliestDateResponse,
    HistoryPublic,
    StatusUpdate,
    UploadCreate,
    UploadPublic,
    UploadVerify,
)
from app.auth import get_current_user
from app.deps import (
    ADMIN_ROLES,
    STAFF_ROLES,
    get_current_patient,
    get_now,
    get_today,
    require_role,
    require_service_access,
)
from app import booking
from app.core import DraftEvent
from app.errors import NotFoundError
from app.tasks import cleanup_expired_drafts

router = APIRouter(
    prefix="/appointments",
    tags=["appointments"],
)


def _patient_for(session: Session, user: dict) -> Optional[Patient]:
    if user["role"] != "patient":
        return None
    return session.exec(
        select(Patient).where(Patient.user_id == user["id"])
    ).first()


def _load_visible(session: Session, appointment_id: int, user: dict) -> Appointment:
    """Owner or staff; healthcare admins only see their assigned service."""
    appt = booking.get_appointment(session, appointment_id)
    if user["role"] == "patient":
        patient = _patient_for(session, user)
        if patient is None or appt.patient_id != patient.id:
            # Do not reveal other patients' appointments
            raise NotFoundError("Appointment not found")
        return appt

    require_role(user, *STAFF_ROLES)
    require_service_access(user, appt.service_id)
    return appt


# --- Availability ---

@router.get("/availability", response_model=AvailabilityResponse)
def availability(
    service_id: int,
    appointment_date: date = Query(alias="date"),
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
    today: date = Depends(get_today),
):
    service = booking.get_service(session, service_id)
    return booking.get_block_availability(session, service, appointment_date, today)


@router.get("/earliest-date", response_model=EarliestDateResponse)
def earliest_date(
    service_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
    today: date = Depends(get_today),
):
    service = booking.get_service(session, service_id)
    return {
        "service_id": service.id,
        "earliest_date": booking.get_earliest_date(session, service, today),
    }


# --- Booking ---

@router.post("", response_model=AppointmentPublic, status_code=201)
def create_appointment(
    appt: AppointmentCreate,
    session: Session = Depends(get_session),
    patient: Patient = Depends(get_current_patient),
    today: date = Depends(get_today),
):
    return booking.book_appointment(session, patient, appt, today)


@router.get("", response_model=List[AppointmentPublic])
def list_appointments(
    status: Optional[AppointmentStatus] = None,
    appointment_date: Optional[date] = None,
    service_id: Optional[int] = None,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    stmt = select(Appointment)

    # 1) Scope by role
    if current_user["role"] == "patient":
        patient = _patient_for(session, current_user)
        if patient is None:
            raise NotFoundError("Patient record not found")
        stmt = stmt.where(Appointment.patient_id == patient.id)
    else:
        require_role(current_user, *STAFF_ROLES)
        assigned = current_user.get("assigned_service_id")
        if current_user["role"] == "healthcare_admin" and assigned is not None:
            stmt = stmt.where(Appointment.service_id == assigned)

    # 2) Filters
    if status is not None:
        stmt = stmt.where(Appointment.status == status.value)
    if appointment_date is not None:
        stmt = stmt.where(Appointment.appointment_date == appointment_date)
    if service_id is not None:
        stmt = stmt.where(Appointment.service_id == service_id)

    # 3) Queue order within a day
    stmt = stmt.order_by(
        Appointment.appointment_date,
        Appointment.time_block,
        Appointment.appointment_number,
        Appointment.id,
    )
    return session.exec(stmt).all()


# --- Drafts ---

@router.post("/drafts", response_model=AppointmentPublic, status_code=201)
def create_draft(
    data: DraftCreate,
    session: Session = Depends(get_session),
    patient: Patient = Depends(get_current_patient),
    today: date = Depends(get_today),
    now: datetime = Depends(get_now),
):
    return booking.create_draft(session, patient, data, today, now)


@router.post("/drafts/{draft_id}/promote", response_model=AppointmentPublic)
def promote_draft(
    draft_id: int,
    data: DraftPromote,
    session: Session = Depends(get_session),
    patient: Patient = Depends(get_current_patient),
    today: date = Depends(get_today),
    now: datetime = Depends(get_now),
):
    return booking.promote_draft(session, patient, draft_id, data, today, now)


@router.delete("/drafts/{draft_id}", status_code=204)
def discard_draft(
    draft_id: int,
    event: DraftEvent = DraftEvent.navigate_back,
    session: Session = Depends(get_session),
    patient: Patient = Depends(get_current_patient),
):
    booking.discard_draft(session, patient, draft_id, event)
    return Response(status_code=204)


@router.post("/cleanup-drafts", response_model=CleanupResult)
def cleanup_drafts(
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
    now: datetime = Depends(get_now),
):
    # Patients clean up their own drafts; admins clean up everyone's
    if current_user["role"] == "patient":
        patient = _patient_for(session, current_user)
        if patient is None:
            raise NotFoundError("Patient record not found")
        count = cleanup_expired_drafts(session, now, patient_id=patient.id)
        return {"cancelled_count": count, "scope": "patient"}

    require_role(current_user, *ADMIN_ROLES)
    count = cleanup_expired_drafts(session, now)
    return {"cancelled_count": count, "scope": "all"}


# --- Uploads ---

@router.patch("/uploads/{upload_id}/verify", response_model=UploadPublic)
def verify_upload(
    upload_id: int,
    data: UploadVerify,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, *ADMIN_ROLES)
    upload = session.get(AppointmentUpload, upload_id)
    if upload is None:
        raise NotFoundError("Upload not found")
    appt = booking.get_appointment(session, upload.appointment_id)
    require_service_access(current_user, appt.service_id)
    return booking.verify_upload(session, upload, current_user["id"], data)


@router.post("/{appointment_id}/uploads", response_model=UploadPublic, status_code=201)
def add_upload(
    appointment_id: int,
    data: UploadCreate,
    session: Session = Depends(get_session),
    patient: Patient = Depends(get_current_patient),
):
    appt = booking.get_appointment(session, appointment_id)
    if appt.patient_id != patient.id:
        raise NotFoundError("Appointment not found")
    return booking.add_upload(session, appt, patient.user_id, data)


@router.get("/{appointment_id}/uploads", response_model=List[UploadPublic])
def list_uploads(
    appointment_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    appt = _load_visible(session, appointment_id, current_user)
    return session.exec(
        select(AppointmentUpload)
        .where(AppointmentUpload.appointment_id == appt.id)
        .order_by(AppointmentUpload.uploaded_at, AppointmentUpload.id)
    ).all()


# --- Single appointment ---

@router.get("/{appointment_id}", response_model=AppointmentPublic)
def get_appointment(
    appointment_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    return _load_visible(session, appointment_id, current_user)


@router.get("/{appointment_id}/history", response_model=List[HistoryPublic])
def appointment_history(
    appointment_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    appt = _load_visible(session, appointment_id, current_user)
    return session.exec(
        select(AppointmentStatusHistory)
        .where(AppointmentStatusHistory.appointment_id == appt.id)
        .order_by(AppointmentStatusHistory.created_at, AppointmentStatusHistory.id)
    ).all()


@router.patch("/{appointment_id}/cancel", response_model=AppointmentPublic)
def cancel_appointment(
    appointment_id: int,
    data: Optional[CancelRequest] = None,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    # 1) Owner or admin
    if current_user["role"] == "patient":
        appt = _load_visible(session, appointment_id, current_user)
    else:
        require_role(current_user, *ADMIN_ROLES)
        appt = booking.get_appointment(session, appointment_id)
        require_service_access(current_user, appt.service_id)

    # 2) Cancel
    reason = data.reason if data is not None else None
    return booking.cancel_appointment(session, appt, current_user["id"], reason)


@router.patch("/{appointment_id}/status", response_model=AppointmentPublic)
def update_status(
    appointment_id: int,
    data: StatusUpdate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, *ADMIN_ROLES)
    appt = booking.get_appointment(session, appointment_id)
    require_service_access(current_user, appt.service_id)
    return booking.transition_status(
        session, appt, data.status.value, current_user["id"], data.reason
    )


@router.post("/{appointment_id}/no-show", response_model=AppointmentPublic)
def mark_no_show(
    appointment_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
    now: datetime = Depends(get_now),
):
    require_role(current_user, *ADMIN_ROLES)
    appt = booking.get_appointment(session, appointment_id)
    require_service_access(current_user, appt.service_id)
    return booking.mark_no_show(session, appt, current_user["id"], now)
