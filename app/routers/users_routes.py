# app/routers/users_routes.py

import logging

from fastapi import APIRouter, Depends
from sqlmodel import Session

from app.db import get_session
from app.models import Patient, User
from app.schemas import StaffCreate, UserCreate, UserPublic
from app.auth import find_user, get_current_user, hash_password
from app.deps import ADMIN_ROLES, require_role
from app.errors import ConflictError, InvalidTransitionError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["users"],
)


def _public(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "role": user.role,
        "status": user.status,
        "first_name": user.first_name,
        "last_name": user.last_name,
    }


def _ensure_email_free(session: Session, email: str):
    if find_user(session, email) is not None:
        raise ConflictError("Email already registered")


def _create_patient_record(session: Session, user: User) -> Patient:
    patient = Patient(user_id=user.id, patient_number=f"P-{user.id:06d}")
    session.add(patient)
    return patient


@router.get("/me", response_model=UserPublic)
def me(
    current_user: dict = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    user = session.get(User, current_user["id"])
    return _public(user)


@router.post("/users", status_code=201, response_model=UserPublic)
def create_user(
    user: UserCreate,
    session: Session = Depends(get_session),
):
    # 1) Check if email already exists
    _ensure_email_free(session, user.email)

    # 2) Create the patient account; it stays pending until an admin approves it
    db_user = User(
        email=user.email,
        password_hash=hash_password(user.password),
        role="patient",
        status="pending",
        first_name=user.first_name,
        last_name=user.last_name,
    )
    session.add(db_user)
    session.flush()  # fills db_user.id
    _create_patient_record(session, db_user)
    session.commit()
    session.refresh(db_user)

    logger.info("Registered patient account %s", db_user.id)

    # 3) Return public user
    return _public(db_user)


@router.post("/admin/users", status_code=201, response_model=UserPublic)
def create_staff_user(
    user: StaffCreate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, "super_admin")
    _ensure_email_free(session, user.email)

    if user.role.value == "healthcare_admin" and user.assigned_service_id is None:
        raise ValidationError("Healthcare admins need an assigned service")

    db_user = User(
        email=user.email,
        password_hash=hash_password(user.password),
        role=user.role.value,
        status="active",
        first_name=user.first_name,
        last_name=user.last_name,
        assigned_service_id=user.assigned_service_id,
    )
    session.add(db_user)
    session.flush()
    if db_user.role == "patient":
        _create_patient_record(session, db_user)
    session.commit()
    session.refresh(db_user)

    logger.info("Created %s account %s", db_user.role, db_user.id)
    return _public(db_user)


def _review_registration(session: Session, user_id: int, new_status: str) -> User:
    db_user = session.get(User, user_id)
    if db_user is None:
        raise NotFoundError("User not found")
    if db_user.status != "pending":
        raise InvalidTransitionError(
            f"Only pending accounts can be reviewed. Account is '{db_user.status}'."
        )
    db_user.status = new_status
    session.add(db_user)
    session.commit()
    session.refresh(db_user)
    logger.info("Account %s marked %s", db_user.id, new_status)
    return db_user


@router.post("/admin/users/{user_id}/approve", response_model=UserPublic)
def approve_user(
    user_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, *ADMIN_ROLES)
    return _public(_review_registration(session, user_id, "active"))


@router.post("/admin/users/{user_id}/reject", response_model=UserPublic)
def reject_user(
    user_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, *ADMIN_ROLES)
    return _public(_review_registration(session, user_id, "rejected"))
