# app/routers/holidays_routes.py

from typing import List, Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy import extract
from sqlmodel import Session, select

from app.db import get_session
from app.models import Holiday
from app.schemas import HolidayCreate, HolidayPublic
from app.auth import get_current_user
from app.deps import require_role
from app.errors import ConflictError, NotFoundError

router = APIRouter(
    prefix="/holidays",
    tags=["holidays"],
)


@router.get("", response_model=List[HolidayPublic])
def list_holidays(
    year: Optional[int] = None,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    stmt = select(Holiday).order_by(Holiday.holiday_date)
    if year is not None:
        # Recurring holidays apply to every year
        stmt = stmt.where(
            (extract("year", Holiday.holiday_date) == year) | (Holiday.is_recurring == True)  # noqa: E712
        )
    return session.exec(stmt).all()


@router.post("", response_model=HolidayPublic, status_code=201)
def create_holiday(
    data: HolidayCreate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, "super_admin")

    existing = session.exec(
        select(Holiday).where(Holiday.holiday_date == data.holiday_date)
    ).first()
    if existing is not None:
        raise ConflictError(
            f"A holiday is already set on {data.holiday_date.isoformat()}: {existing.holiday_name}"
        )

    holiday = Holiday(**data.model_dump())
    session.add(holiday)
    session.commit()
    session.refresh(holiday)
    return holiday


@router.delete("/{holiday_id}", status_code=204)
def delete_holiday(
    holiday_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, "super_admin")

    holiday = session.get(Holiday, holiday_id)
    if holiday is None:
        raise NotFoundError("Holiday not found")
    session.delete(holiday)
    session.commit()
    return Response(status_code=204)
