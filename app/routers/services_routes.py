# app/routers/services_routes.py

from typing import List

from fastapi import APIRouter, Depends
from sqlmodel import Session, select

from app.db import get_session
from app.models import Service
from app.schemas import ServiceCreate, ServicePublic, ServiceUpdate
from app.auth import get_current_user
from app.booking import get_service
from app.deps import require_role
from app.errors import ValidationError

router = APIRouter(
    prefix="/services",
    tags=["services"],
)


def _check_weekdays(weekdays: List[int]):
    if any(day < 0 or day > 6 for day in weekdays):
        raise ValidationError("Weekdays must be between 0 (Monday) and 6 (Sunday)")


@router.get("", response_model=List[ServicePublic])
def list_services(
    include_inactive: bool = False,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    stmt = select(Service).order_by(Service.id)
    if not include_inactive:
        stmt = stmt.where(Service.is_active == True)  # noqa: E712
    return session.exec(stmt).all()


@router.post("", response_model=ServicePublic, status_code=201)
def create_service(
    data: ServiceCreate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, "super_admin")
    _check_weekdays(data.weekdays)

    service = Service(**data.model_dump())
    session.add(service)
    session.commit()
    session.refresh(service)
    return service


@router.patch("/{service_id}", response_model=ServicePublic)
def update_service(
    service_id: int,
    data: ServiceUpdate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, "super_admin")
    service = get_service(session, service_id)

    changes = data.model_dump(exclude_unset=True)
    if changes.get("weekdays") is not None:
        _check_weekdays(changes["weekdays"])
    for key, value in changes.items():
        setattr(service, key, value)

    session.add(service)
    session.commit()
    session.refresh(service)
    return service
