"""
Audit trail writer and reader.

Routers call audit_log / audit_create / audit_delete after a state change
has been applied; entries are never updated afterwards.
"""
import logging
from typing import List, Optional

from fastapi import Request

from database import db
from models.audit import AuditLog, AuditAction, AuditModule, AuditActor, AuditRequestInfo

logger = logging.getLogger(__name__)

SENSITIVE_FIELDS = {"password", "password_hash", "token", "secret", "temporary_password"}
REDACTED = "[REDACTED]"


def redact(data: Optional[dict]) -> Optional[dict]:
    """Copy of `data` with sensitive keys masked at any depth."""
    if not data:
        return None
    return {
        key: REDACTED if key.lower() in SENSITIVE_FIELDS else (redact(value) if isinstance(value, dict) else value)
        for key, value in data.items()
    }


def _request_info(request: Optional[Request]) -> Optional[AuditRequestInfo]:
    if request is None:
        return None
    return AuditRequestInfo(
        method=request.method,
        path=request.url.path,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent", "")[:500],
    )


class AuditService:

    @staticmethod
    async def log(
        action: AuditAction,
        module: AuditModule,
        user: Optional[dict] = None,
        record_id: Optional[str] = None,
        record_type: Optional[str] = None,
        description: Optional[str] = None,
        old_values: Optional[dict] = None,
        new_values: Optional[dict] = None,
        request: Optional[Request] = None,
        metadata: Optional[dict] = None,
    ) -> str:
        """
        Store an audit entry and return its id.

        `user` is the current user document (None for anonymous actions such
        as failed logins); old/new values go through redact().
        """
        entry = AuditLog(
            action=action,
            module=module,
            actor=AuditActor(**{k: user.get(k) for k in ("id", "name", "email", "role")}) if user else AuditActor(),
            record_id=record_id,
            record_type=record_type,
            description=description,
            old_values=redact(old_values),
            new_values=redact(new_values),
            metadata=metadata,
            request=_request_info(request),
        )
        await db.audit_logs.insert_one(entry.model_dump(mode="json"))
        logger.debug("audit %s/%s %s", module.value, action.value, record_id)
        return entry.id

    @staticmethod
    async def recent(
        module: Optional[AuditModule] = None,
        action: Optional[AuditAction] = None,
        record_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[dict]:
        query = {}
        if module:
            query["module"] = module.value
        if action:
            query["action"] = action.value
        if record_id:
            query["record_id"] = record_id
        return await db.audit_logs.find(query, {"_id": 0}).sort("timestamp", -1).to_list(limit)


async def audit_log(action: AuditAction, module: AuditModule, user: Optional[dict] = None, **kwargs):
    return await AuditService.log(action, module, user, **kwargs)


async def audit_create(module: AuditModule, user: dict, record_id: str, record_type: str, new_values: dict, **kwargs):
    return await AuditService.log(
        AuditAction.CREATE, module, user, record_id=record_id, record_type=record_type,
        new_values=new_values, description=f"{record_type} {record_id} created", **kwargs
    )


async def audit_delete(module: AuditModule, user: dict, record_id: str, record_type: str, old_values: dict = None, **kwargs):
    return await AuditService.log(
        AuditAction.DELETE, module, user, record_id=record_id, record_type=record_type,
        old_values=old_values, description=f"{record_type} {record_id} deleted", **kwargs
    )
