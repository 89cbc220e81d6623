# app/schemas.py

from pydantic import BaseModel, Field
from enum import Enum
from datetime import datetime, date, time
from typing import List, Optional


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserRole(str, Enum):
    patient = "patient"
    doctor = "doctor"
    staff = "staff"
    healthcare_admin = "healthcare_admin"
    super_admin = "super_admin"


class UserStatus(str, Enum):
    pending = "pending"
    active = "active"
    suspended = "suspended"
    rejected = "rejected"


class TimeBlock(str, Enum):
    AM = "AM"
    PM = "PM"


class AppointmentStatus(str, Enum):
    draft = "draft"
    pending = "pending"
    scheduled = "scheduled"
    checked_in = "checked_in"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"
    no_show = "no_show"
    rescheduled = "rescheduled"


class HealthCardType(str, Enum):
    food_handler = "food_handler"
    non_food = "non_food"
    pink = "pink"


class LabLocation(str, Enum):
    inside_cho = "inside_cho"
    outside_cho = "outside_cho"


class UploadFileType(str, Enum):
    lab_request = "lab_request"
    payment_receipt = "payment_receipt"
    valid_id = "valid_id"
    other = "other"


class VerificationStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


# --- Users ---

class UserPublic(BaseModel):
    id: int
    email: str
    role: UserRole
    status: UserStatus
    first_name: str
    last_name: str


class UserCreate(BaseModel):
    email: str
    password: str = Field(min_length=8, max_length=72)
    first_name: str
    last_name: str


class StaffCreate(UserCreate):
    role: UserRole
    assigned_service_id: Optional[int] = None


# --- Services & holidays ---

class ServiceCreate(BaseModel):
    name: str
    category: str
    duration_minutes: int = Field(default=30, ge=5, le=480)
    requires_appointment: bool = True
    requires_medical_record: bool = False
    weekdays: List[int] = Field(default_factory=lambda: [0, 1, 2, 3, 4])


class ServiceUpdate(BaseModel):
    name: Optional[str] = None
    category: Optional[str] = None
    duration_minutes: Optional[int] = Field(default=None, ge=5, le=480)
    requires_appointment: Optional[bool] = None
    requires_medical_record: Optional[bool] = None
    is_active: Optional[bool] = None
    weekdays: Optional[List[int]] = None


class ServicePublic(BaseModel):
    id: int
    name: str
    category: str
    duration_minutes: int
    requires_appointment: bool
    requires_medical_record: bool
    is_active: bool
    weekdays: List[int]


class HolidayCreate(BaseModel):
    holiday_date: date
    holiday_name: str
    is_recurring: bool = False


class HolidayPublic(BaseModel):
    id: int
    holiday_date: date
    holiday_name: str
    is_recurring: bool


# --- Availability ---

class BlockAvailability(BaseModel):
    block: TimeBlock
    label: str
    time_range: str
    capacity: int
    booked: int
    remaining: int
    available: bool


class AvailabilityResponse(BaseModel):
    service_id: int
    date: date
    available: bool
    reason: Optional[str] = None
    total_capacity: int
    total_booked: int
    total_remaining: int
    blocks: List[BlockAvailability]


class EarliestDateResponse(BaseModel):
    service_id: int
    earliest_date: Optional[date]


# --- Appointments ---

class AppointmentCreate(BaseModel):
    service_id: int
    appointment_date: date
    time_block: TimeBlock
    reason: Optional[str] = None


class DraftCreate(BaseModel):
    service_id: int
    card_type: HealthCardType
    lab_location: LabLocation


class DraftPromote(BaseModel):
    appointment_date: date
    time_block: TimeBlock
    reason: str



class AppointmentPublic(BaseModel):
    id: int
    patient_id: int
    service_id: int
    appointment_date: Optional[date]
    appointment_time: Optional[time]
    time_block: Optional[TimeBlock]
    appointment_number: Optional[int]
    status: AppointmentStatus
    reason: Optional[str]
    card_type: Optional[HealthCardType]
    lab_location: Optional[LabLocation]
    cancellation_reason: Optional[str]
    draft_expires_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class StatusUpdate(BaseModel):
    status: AppointmentStatus
    reason: Optional[str] = None


class HistoryPublic(BaseModel):
    id: int
    appointment_id: int
    change_type: str
    from_status: Optional[str]
    to_status: str
    changed_by: Optional[int]
    reason: Optional[str]
    created_at: datetime


# --- Uploads ---

class UploadCreate(BaseModel):
    file_type: UploadFileType
    file_name: str
    mime_type: str
    file_size_bytes: int = Field(gt=0)
    storage_path: str


class UploadVerify(BaseModel):
    verification_status: VerificationStatus
    verification_notes: Optional[str] = None


class UploadPublic(BaseModel):
    id: int
    appointment_id: int
    file_type: UploadFileType
    file_name: str
    mime_type: str
    file_size_bytes: int
    storage_path: str
    verification_status: VerificationStatus
    verification_notes: Optional[str]
    uploaded_by_id: int
    uploaded_at: datetime
    verified_by_id: Optional[int]
    verified_at: Optional[datetime]


# --- Jobs ---

class CleanupResult(BaseModel):
    cancelled_count: int
    scope: str


class NoShowStats(BaseModel):
    total_appointments_checked: int = 0
    total_marked_no_show: int = 0
    total_patients_suspended: int = 0
    appointments_marked: List[int] = Field(default_factory=list)
    patients_suspended: List[int] = Field(default_factory=list)
