from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional
from datetime import datetime, timezone
import uuid
from .enums import BloodGroup, DonationStatus
from .dates import normalize_date_or_datetime

class Donation(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    donor_id: str
    request_id: Optional[str] = None
    appointment_id: Optional[str] = None
    collection_date: str
    units: int = Field(default=1, ge=1)
    blood_group: BloodGroup
    recorded_by: Optional[str] = None
    verified_by: Optional[str] = None
    notes: Optional[str] = None
    status: DonationStatus = DonationStatus.COLLECTED
    inventory_lot_id: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class DonationRecordCreate(BaseModel):
    donor_id: str
    collection_date: Optional[str] = None
    units: int = Field(default=1, ge=1)
    notes: Optional[str] = None
    verified_by: Optional[str] = None
    location: Optional[str] = None

    @field_validator("collection_date")
    @classmethod
    def check_collection_date(cls, v: Optional[str]) -> Optional[str]:
        return normalize_date_or_datetime(v)
