from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional
from datetime import datetime, timezone
import uuid
from .enums import AppointmentStatus, AppointmentType, BloodGroup
from .dates import normalize_date

class Appointment(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    donor_id: str
    request_id: Optional[str] = None
    notification_id: Optional[str] = None
    scheduled_date: str
    scheduled_time: str
    estimated_duration: int = 45
    location: str
    address: Optional[str] = None
    contact_person: Optional[str] = None
    contact_phone: Optional[str] = None
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    blood_group: BloodGroup
    units_expected: int = 1
    units_collected: Optional[int] = None
    donor_notes: Optional[str] = None
    admin_notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    confirmed_at: Optional[str] = None
    reminder_sent_at: Optional[str] = None
    completed_at: Optional[str] = None
    donation_record_id: Optional[str] = None
    created_by: Optional[str] = None
    type: AppointmentType = AppointmentType.REACTIVE
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class AppointmentFromNotification(BaseModel):
    notification_id: str
    scheduled_date: str
    scheduled_time: str = Field(pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    location: str = Field(min_length=1)
    donor_notes: Optional[str] = None

    @field_validator("scheduled_date")
    @classmethod
    def check_scheduled_date(cls, v: str) -> str:
        return normalize_date(v)

class AppointmentStatusUpdate(BaseModel):
    status: AppointmentStatus
    admin_notes: Optional[str] = None
    units_collected: Optional[int] = Field(default=None, ge=1)

class AppointmentCancel(BaseModel):
    reason: Optional[str] = None

class AppointmentComplete(BaseModel):
    units_collected: int = Field(default=1, ge=1)
    admin_notes: Optional[str] = None
    location: Optional[str] = None
