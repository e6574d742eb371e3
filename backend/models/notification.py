from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime, timezone
import uuid
from .enums import NotificationType, NotificationPriority, NotificationStatus, ResponseAction

class NotificationResponse(BaseModel):
    action: ResponseAction
    message: Optional[str] = None
    preferred_slots: List[str] = []
    responded_at: str

class NotificationMetadata(BaseModel):
    blood_group: Optional[str] = None
    units_needed: Optional[int] = None
    hospital_name: Optional[str] = None
    urgency_level: Optional[str] = None

class Notification(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: NotificationType
    priority: NotificationPriority = NotificationPriority.NORMAL
    status: NotificationStatus = NotificationStatus.PENDING
    title: str
    message: str
    recipient_id: str  # donor id
    recipient_type: str = "donor"
    request_id: Optional[str] = None
    appointment_id: Optional[str] = None
    sent_at: Optional[str] = None
    read_at: Optional[str] = None
    responded_at: Optional[str] = None
    expires_at: Optional[str] = None
    response: Optional[NotificationResponse] = None
    created_by: Optional[str] = None
    metadata: NotificationMetadata = Field(default_factory=NotificationMetadata)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class DonationRequestSend(BaseModel):
    request_id: str
    donor_ids: List[str] = Field(min_length=1)
    message: Optional[str] = None
    priority: NotificationPriority = NotificationPriority.NORMAL
    expires_in_hours: int = Field(default=24, ge=1, le=24 * 30)

class NotificationRespond(BaseModel):
    action: ResponseAction
    message: Optional[str] = None
    preferred_slots: List[str] = []
