# app/deps.py

from datetime import date, datetime

import pytz
from fastapi import Depends
from sqlmodel import Session, select

from .auth import get_current_user
from .config import TIMEZONE
from .db import get_session
from .errors import ForbiddenError, NotFoundError
from .models import Patient

ADMIN_ROLES = ("healthcare_admin", "super_admin")
STAFF_ROLES = ("doctor", "staff", "healthcare_admin", "super_admin")


def require_role(user: dict, *roles: str):
    if user["role"] not in roles:
        raise ForbiddenError("Forbidden")


def require_service_access(user: dict, service_id: int):
    # Healthcare admins bound to a service only act on that service
    if user["role"] != "healthcare_admin":
        return
    assigned = user.get("assigned_service_id")
    if assigned is not None and assigned != service_id:
        raise ForbiddenError("You are not assigned to this service")


def get_now() -> datetime:
    """Current wall-clock time at the office, as a naive datetime."""
    return datetime.now(pytz.timezone(TIMEZONE)).replace(tzinfo=None)


def get_today(now: datetime = Depends(get_now)) -> date:
    return now.date()


def get_current_patient(
    current_user: dict = Depends(get_current_user),
    session: Session = Depends(get_session),
) -> Patient:
    require_role(current_user, "patient")
    patient = session.exec(
        select(Patient).where(Patient.user_id == current_user["id"])
    ).first()
    if patient is None:
        raise NotFoundError("Patient record not found")
    return patient
