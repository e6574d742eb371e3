import logging

from fastapi import APIRouter, HTTPException, Depends, Request

from config import settings
from database import db
from models import User, UserCreate, UserLogin, UserResponse, UserRole, AdminStatus
from models.audit import AuditAction, AuditModule
from services import get_current_user, hash_password, verify_password, create_access_token, audit_log

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", status_code=201)
async def register(user_data: UserCreate):
    existing = await db.users.find_one({"email": user_data.email})
    if existing:
        raise HTTPException(status_code=409, detail="Email already registered")

    user = User(
        email=user_data.email,
        password_hash=hash_password(user_data.password),
        name=user_data.name,
        role=user_data.role,
        phone=user_data.phone,
    )

    if user_data.role == UserRole.ADMIN:
        if user_data.email == settings.MAIN_ADMIN_EMAIL:
            user.is_main_admin = True
            user.admin_status = AdminStatus.APPROVED
            user.approved_at = user.created_at
        else:
            user.admin_status = AdminStatus.PENDING

    await db.users.insert_one(user.model_dump(mode="json"))
    logger.info("Registered %s user %s", user.role.value, user.email)

    response = {
        "id": user.id,
        "email": user.email,
        "role": user.role.value,
        "name": user.name,
        "admin_status": user.admin_status.value if user.admin_status else None,
    }
    if user.admin_status == AdminStatus.PENDING:
        response["message"] = "Admin registration submitted. Awaiting approval from main administrator."
    return response


@router.post("/login")
async def login(credentials: UserLogin, request: Request):
    user = await db.users.find_one({"email": credentials.email}, {"_id": 0})
    if not user or not verify_password(credentials.password, user["password_hash"]):
        await audit_log(
            AuditAction.LOGIN_FAILED, AuditModule.AUTH,
            description=f"Failed login for {credentials.email}", request=request
        )
        raise HTTPException(status_code=401, detail="Invalid credentials")

    if user.get("is_active") is False:
        raise HTTPException(status_code=403, detail="Your account has been disabled. Please contact support.")

    if user["role"] == UserRole.ADMIN.value:
        if user.get("admin_status") == AdminStatus.PENDING.value:
            raise HTTPException(
                status_code=403,
                detail="Your admin registration is awaiting approval from the main administrator."
            )
        if user.get("admin_status") == AdminStatus.REJECTED.value:
            raise HTTPException(status_code=403, detail="Your admin registration has been rejected. Please contact support.")

    token = create_access_token(user)
    await audit_log(AuditAction.LOGIN, AuditModule.AUTH, user, record_id=user["id"], record_type="user", request=request)

    return {
        "token": token,
        "user": UserResponse(**user).model_dump(mode="json"),
    }


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: dict = Depends(get_current_user)):
    return current_user
