from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional, List
from datetime import datetime, timezone
import uuid
from .enums import BloodGroup, RequestStatus, RequestType, Urgency
from .dates import normalize_date_or_datetime

class LotAllocation(BaseModel):
    lot_id: str
    units: int

class BloodRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    requester_user_id: Optional[str] = None
    requester_role: Optional[str] = None
    request_type: RequestType = RequestType.STANDARD
    patient_name: Optional[str] = None
    hospital_name: Optional[str] = None
    blood_group: BloodGroup
    units_requested: int
    urgency: Urgency = Urgency.MEDIUM
    status: RequestStatus = RequestStatus.PENDING
    required_by: Optional[str] = None
    medical_report_url: Optional[str] = None
    notes: Optional[str] = None
    # external requester
    contact_number: Optional[str] = None
    hospital_preference: Optional[str] = None
    # hospital requester
    department: Optional[str] = None
    staff_id: Optional[str] = None
    doctor_name: Optional[str] = None

    assigned_units: int = 0
    allocations: List[LotAllocation] = []

    approved_on: Optional[str] = None
    approved_by: Optional[str] = None
    rejected_on: Optional[str] = None
    rejection_reason: Optional[str] = None

    collection_date: Optional[str] = None
    collection_location: Optional[str] = None
    collection_instructions: Optional[str] = None
    collected_at: Optional[str] = None
    collected_by_user_confirmation: bool = False
    verified_by_admin: bool = False
    verified_at: Optional[str] = None
    verified_by_user_id: Optional[str] = None

    reschedule_requested: bool = False
    reschedule_reason: Optional[str] = None
    original_collection_date: Optional[str] = None
    new_requested_date: Optional[str] = None
    reschedule_approved: bool = False

    no_show_detected_at: Optional[str] = None
    no_show_reason: Optional[str] = None

    cancelled_at: Optional[str] = None
    cancellation_reason: Optional[str] = None

    donors_notified: int = 0
    donors_responded: int = 0
    appointments_scheduled: int = 0
    units_collected: int = 0

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class BloodRequestCreate(BaseModel):
    blood_group: BloodGroup
    units_requested: int = Field(ge=1, le=10)
    urgency: Urgency = Urgency.MEDIUM
    patient_name: Optional[str] = Field(default=None, max_length=100)
    hospital_name: Optional[str] = Field(default=None, max_length=200)
    required_by: Optional[str] = None
    medical_report_url: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    contact_number: Optional[str] = None
    hospital_preference: Optional[str] = None
    department: Optional[str] = None
    staff_id: Optional[str] = None
    doctor_name: Optional[str] = None

    @field_validator("required_by")
    @classmethod
    def check_required_by(cls, v: Optional[str]) -> Optional[str]:
        return normalize_date_or_datetime(v)

class ProactiveRequestCreate(BaseModel):
    blood_group: BloodGroup
    units_requested: int = Field(default=5, ge=1, le=100)
    urgency: Urgency = Urgency.HIGH
    notes: Optional[str] = None

class ApproveRequest(BaseModel):
    collection_date: str
    collection_location: str
    collection_instructions: Optional[str] = None

    @field_validator("collection_date")
    @classmethod
    def check_collection_date(cls, v: str) -> str:
        return normalize_date_or_datetime(v)

class RejectRequest(BaseModel):
    reason: Optional[str] = None

class RescheduleRequest(BaseModel):
    new_date: str
    reason: Optional[str] = None

    @field_validator("new_date")
    @classmethod
    def check_new_date(cls, v: str) -> str:
        return normalize_date_or_datetime(v)

class RescheduleDecision(BaseModel):
    approved: bool

class CancelRequest(BaseModel):
    reason: str = Field(min_length=1)
