from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional
from datetime import datetime, timezone
import uuid
from .enums import BloodGroup
from .dates import normalize_date, normalize_date_or_datetime

class InventoryLot(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    blood_group: BloodGroup
    units: int = Field(ge=0)
    expiry_date: str
    location: Optional[str] = None
    donor_id: Optional[str] = None
    collection_date: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class InventoryLotCreate(BaseModel):
    blood_group: BloodGroup
    units: int
    expiry_date: str
    location: Optional[str] = None
    donor_id: Optional[str] = None
    collection_date: Optional[str] = None

    @field_validator("expiry_date")
    @classmethod
    def check_expiry_date(cls, v: str) -> str:
        return normalize_date(v)

    @field_validator("collection_date")
    @classmethod
    def check_collection_date(cls, v: Optional[str]) -> Optional[str]:
        return normalize_date_or_datetime(v)

class InventoryThreshold(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    blood_group: BloodGroup
    minimum_units: int = Field(default=5, ge=0)
    target_units: int = Field(default=20, ge=0)
    alert_enabled: bool = True
    last_alert_date: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class ThresholdUpdate(BaseModel):
    blood_group: BloodGroup
    minimum_units: Optional[int] = Field(default=None, ge=0)
    target_units: Optional[int] = Field(default=None, ge=0)
    alert_enabled: Optional[bool] = None
