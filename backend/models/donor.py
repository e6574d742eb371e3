from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime, timezone
import uuid
from .enums import BloodGroup, VerificationStatus, EligibilityStatus, DonorType

class DonationRecord(BaseModel):
    date: str
    units: int = Field(ge=1)

class AvailabilityPreferences(BaseModel):
    weekdays: bool = True
    weekends: bool = False
    mornings: bool = False
    evenings: bool = True

class Donor(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    blood_group: BloodGroup
    dob: Optional[str] = None
    gender: Optional[str] = None
    address: Optional[str] = None
    weight: Optional[float] = None
    last_donation_date: Optional[str] = None
    next_eligible_date: Optional[str] = None
    donation_history: List[DonationRecord] = []
    total_donations: int = 0
    eligibility_notes: Optional[str] = None
    # donor controls is_available, admins control is_active
    is_available: bool = True
    is_active: bool = True
    verification_status: VerificationStatus = VerificationStatus.PENDING
    eligibility_status: EligibilityStatus = EligibilityStatus.PENDING
    donor_type: DonorType = DonorType.REGULAR
    availability: AvailabilityPreferences = Field(default_factory=AvailabilityPreferences)
    registered_by: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class DonorRegister(BaseModel):
    blood_group: BloodGroup
    dob: Optional[str] = None
    gender: Optional[str] = None
    address: Optional[str] = Field(default=None, max_length=500)
    eligibility_notes: Optional[str] = None

class DonorAdminCreate(BaseModel):
    name: str
    email: str
    phone: Optional[str] = None
    dob: Optional[str] = None
    gender: Optional[str] = None
    blood_group: BloodGroup
    address: Optional[str] = None
    weight: Optional[float] = None
    donor_type: DonorType = DonorType.REGULAR
    availability: Optional[AvailabilityPreferences] = None
    temporary_password: Optional[str] = None

class AvailabilityUpdate(BaseModel):
    is_available: bool

class DonorStatusUpdate(BaseModel):
    is_active: Optional[bool] = None
    reason: Optional[str] = None
