"""
Implant Warranty - Admin Router
Staff-only maintenance of warranty records: batch creation of blank records,
authorized reads with decrypted PII, confirmation resend, expiry sweep and
statistics. Every route requires a staff bearer token.
"""
from typing import Any, Dict, List
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import require_admin, require_staff
from ..database import get_db
from ..models.db_models import UserDB
from ..services.audit_log_service import audit_context_from_request
from ..services.notification_service import NotificationError
from ..services.warranty import WarrantyAdminService, WarrantyError, MAX_BATCH_SIZE
from .errors import error_to_http

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/warranties", tags=["admin"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class BatchCreateRequest(BaseModel):
    """Number of blank records to create."""
    count: int = Field(ge=1, le=MAX_BATCH_SIZE)


class BatchCreateResponse(BaseModel):
    count: int
    ids: List[str]


class UpdateExpiredResponse(BaseModel):
    updated: int


class MessageResponse(BaseModel):
    message: str


# =============================================================================
# HELPERS
# =============================================================================

def get_admin_service(db: Session = Depends(get_db)) -> WarrantyAdminService:
    return WarrantyAdminService(db)


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.post("/batch", response_model=BatchCreateResponse, status_code=status.HTTP_201_CREATED)
async def batch_create(
    body: BatchCreateRequest,
    request: Request,
    admin: UserDB = Depends(require_admin),
    service: WarrantyAdminService = Depends(get_admin_service),
):
    """Create blank warranty records to hand out with implants."""
    try:
        ids = service.batch_create(body.count, context=audit_context_from_request(request, admin))
    except WarrantyError as e:
        raise error_to_http(e)
    return BatchCreateResponse(count=len(ids), ids=ids)


@router.get("/statistics")
async def statistics(
    staff: UserDB = Depends(require_staff),
    service: WarrantyAdminService = Depends(get_admin_service),
) -> Dict[str, int]:
    """Counts of filled records by current status, plus the blank count."""
    return service.statistics()


@router.post("/update-expired", response_model=UpdateExpiredResponse)
async def update_expired(
    request: Request,
    admin: UserDB = Depends(require_admin),
    service: WarrantyAdminService = Depends(get_admin_service),
):
    """Mark active warranties past their end date as expired."""
    updated = service.update_expired(context=audit_context_from_request(request, admin))
    return UpdateExpiredResponse(updated=updated)


@router.get("/{warranty_id}")
async def get_warranty(
    warranty_id: str,
    request: Request,
    staff: UserDB = Depends(require_staff),
    service: WarrantyAdminService = Depends(get_admin_service),
) -> Dict[str, Any]:
    """Full record with identity number and phone decrypted."""
    try:
        return service.get_decrypted(warranty_id, context=audit_context_from_request(request, staff))
    except WarrantyError as e:
        raise error_to_http(e)


@router.post("/{warranty_id}/resend-email", response_model=MessageResponse)
async def resend_email(
    warranty_id: str,
    request: Request,
    staff: UserDB = Depends(require_staff),
    service: WarrantyAdminService = Depends(get_admin_service),
):
    """Send the patient confirmation email again."""
    try:
        sent = service.resend_confirmation(warranty_id, context=audit_context_from_request(request, staff))
    except WarrantyError as e:
        raise error_to_http(e)
    except NotificationError as e:
        logger.error(f"Resend failed for warranty {warranty_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to resend email"
        )

    if not sent:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Email delivery is not configured"
        )
    return MessageResponse(message="Email resent")
