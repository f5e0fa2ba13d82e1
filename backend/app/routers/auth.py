"""
Implant Warranty - Staff Authentication Router
Handles staff login, session verification and password change.
Staff accounts are provisioned out of band (scripts/seed_admin.py).
"""
from typing import Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.db_models import UserDB, AuditAction, AuditTable
from ..auth import hash_password, verify_password, create_access_token, get_current_user
from ..services.audit_log_service import AuditLogService, audit_context_from_request

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class LoginRequest(BaseModel):
    username: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class MessageResponse(BaseModel):
    message: str


class ChangePasswordRequest(BaseModel):
    """Request model for changing password."""
    current_password: str
    new_password: str
    confirm_password: str

    @field_validator('new_password')
    @classmethod
    def validate_password_strength(cls, v):
        if len(v) < 8:
            raise ValueError('Password must be at least 8 characters')
        return v

    @field_validator('confirm_password')
    @classmethod
    def passwords_match(cls, v, info):
        if 'new_password' in info.data and v != info.data['new_password']:
            raise ValueError('Passwords do not match')
        return v


class UserResponse(BaseModel):
    id: str
    username: str
    email: Optional[str] = None
    role: str


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, request: Request, db: Session = Depends(get_db)):
    """
    Authenticate a staff member and return a JWT.
    """
    user = db.query(UserDB).filter(UserDB.username == body.username).first()

    if not user or not user.is_active or not verify_password(body.password, user.password_hash):
        logger.info(f"Failed login for {body.username}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token = create_access_token(user.id, user.username, user.role)

    AuditLogService(db).record(
        action=AuditAction.LOGIN,
        table=AuditTable.AUTH,
        record_id=user.id,
        context=audit_context_from_request(request, user),
    )
    logger.info(f"User logged in: {user.username}")
    return TokenResponse(access_token=access_token)


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: UserDB = Depends(get_current_user)):
    """
    Get current authenticated staff info.
    """
    return UserResponse(
        id=current_user.id,
        username=current_user.username,
        email=current_user.email,
        role=current_user.role,
    )


@router.put("/password", response_model=MessageResponse)
async def change_password(
    body: ChangePasswordRequest,
    request: Request,
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Change the current staff member's password.
    """
    if not verify_password(body.current_password, current_user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Current password is incorrect"
        )

    current_user.password_hash = hash_password(body.new_password)
    db.commit()

    AuditLogService(db).record(
        action=AuditAction.UPDATE,
        table=AuditTable.USERS,
        record_id=current_user.id,
        new_values={"password_changed": True},
        context=audit_context_from_request(request, current_user),
    )
    logger.info(f"Password changed for user: {current_user.username}")
    return MessageResponse(message="Password updated successfully")
