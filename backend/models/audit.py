"""
Audit trail entries.

One document per admin decision or workflow transition, stored in
audit_logs with the acting user and the HTTP request that caused it.
"""
from pydantic import BaseModel, Field
from datetime import datetime, timezone
from typing import Optional
from enum import Enum
import uuid


class AuditAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    LOGIN = "login"
    LOGIN_FAILED = "login_failed"
    APPROVE = "approve"
    REJECT = "reject"
    CANCEL = "cancel"
    RELEASE = "release"
    COLLECT = "collect"
    VERIFY = "verify"
    COMPLETE = "complete"
    NOTIFY = "notify"
    ENABLE = "enable"
    DISABLE = "disable"
    CLEANUP = "cleanup"


class AuditModule(str, Enum):
    AUTH = "auth"
    ADMINS = "admins"
    DONORS = "donors"
    DONATIONS = "donations"
    INVENTORY = "inventory"
    REQUESTS = "requests"
    NOTIFICATIONS = "notifications"
    APPOINTMENTS = "appointments"
    MEDICAL_REPORTS = "medical_reports"


class AuditActor(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None


class AuditRequestInfo(BaseModel):
    method: Optional[str] = None
    path: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class AuditLog(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    action: AuditAction
    module: AuditModule
    actor: AuditActor = Field(default_factory=AuditActor)
    record_id: Optional[str] = None
    record_type: Optional[str] = None
    description: Optional[str] = None
    old_values: Optional[dict] = None
    new_values: Optional[dict] = None
    metadata: Optional[dict] = None
    request: Optional[AuditRequestInfo] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
