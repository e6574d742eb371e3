"""
Medical reports uploaded by donors for admin review.

An approved report verifies the donor and marks them eligible; a rejected
one marks them not eligible.
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from datetime import datetime, timezone
import uuid
from .enums import ReportType, ReviewStatus

class MedicalReport(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    donor_id: str
    report_type: ReportType = ReportType.HEALTH_CHECKUP
    report_url: str
    stored_name: str
    file_name: str
    file_size: int
    content_type: Optional[str] = None
    uploaded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: ReviewStatus = ReviewStatus.PENDING
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[str] = None
    review_notes: Optional[str] = None
    valid_until: Optional[str] = None
    is_active: bool = True

class MedicalReportReview(BaseModel):
    status: ReviewStatus
    review_notes: Optional[str] = Field(default=None, max_length=1000)
