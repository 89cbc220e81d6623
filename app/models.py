# app/models.py

from typing import Optional, List
from datetime import datetime, timezone, date as Date, time

from sqlalchemy import DateTime, UniqueConstraint
from sqlalchemy.types import JSON
from sqlmodel import SQLModel, Field, Column


# Timestamps are stored naive, in UTC
def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    password_hash: str
    role: str  # patient, doctor, staff, healthcare_admin, super_admin
    status: str = "pending"
    first_name: str = ""
    last_name: str = ""
    assigned_service_id: Optional[int] = Field(default=None, foreign_key="service.id")
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)


class Patient(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True, unique=True)
    patient_number: Optional[str] = None
    is_suspended: bool = False
    suspended_until: Optional[Date] = None
    no_show_count: int = 0
    last_no_show_at: Optional[datetime] = Field(default=None, sa_type=DateTime)


class Service(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    category: str
    duration_minutes: int = 30
    requires_appointment: bool = True
    requires_medical_record: bool = False
    is_active: bool = True
    weekdays: List[int] = Field(default_factory=lambda: [0, 1, 2, 3, 4], sa_column=Column(JSON))


class Holiday(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    holiday_date: Date = Field(index=True, unique=True)
    holiday_name: str
    is_recurring: bool = False


class Appointment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    patient_id: int = Field(foreign_key="patient.id", index=True)
    service_id: int = Field(foreign_key="service.id", index=True)

    # Drafts have no date or block until they are promoted
    appointment_date: Optional[Date] = Field(default=None, index=True)
    appointment_time: Optional[time] = None
    time_block: Optional[str] = None
    appointment_number: Optional[int] = None

    status: str = "pending"
    reason: Optional[str] = None
    card_type: Optional[str] = None
    lab_location: Optional[str] = None
    cancellation_reason: Optional[str] = None
    draft_expires_at: Optional[datetime] = Field(default=None, sa_type=DateTime)

    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)


class AppointmentUpload(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("appointment_id", "file_type", "storage_path", name="uq_upload_path"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    appointment_id: int = Field(foreign_key="appointment.id", index=True)
    file_type: str
    file_name: str
    mime_type: str
    file_size_bytes: int
    storage_path: str
    verification_status: str = "pending"
    verification_notes: Optional[str] = None
    uploaded_by_id: int = Field(foreign_key="user.id")
    uploaded_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    verified_by_id: Optional[int] = Field(default=None, foreign_key="user.id")
    verified_at: Optional[datetime] = Field(default=None, sa_type=DateTime)


class AppointmentStatusHistory(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    appointment_id: int = Field(foreign_key="appointment.id", index=True)
    change_type: str  # status_change, no_show, reschedule
    from_status: Optional[str] = None
    to_status: str
    changed_by: Optional[int] = Field(default=None, foreign_key="user.id")
    reason: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
