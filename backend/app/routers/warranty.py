"""
Implant Warranty - Patient Registration Router

Public, unauthenticated. Continuity between steps is carried by the
`warranty_step` device-binding cookie issued at each step.

    POST /warranty/{id}/step1   serials + surgery date   (no cookie needed)
    PUT  /warranty/{id}/step2   patient details          (cookie: step 1 or 2)
    PUT  /warranty/{id}/step3   confirm                  (cookie: step 2)
    GET  /warranty/{id}/status  current step
    GET  /warranty/{id}         in-progress view         (cookie: step 1 or 2)
    GET  /warranty/serial-check pre-flight serial check  (record must be blank)
"""
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Optional
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field, field_validator
from sqlalchemy.orm import Session

from ..config import WARRANTY_STEP_COOKIE, WARRANTY_COOKIE_SECURE
from ..database import get_db, get_session_factory
from ..services.audit_log_service import audit_context_from_request
from ..services.notification_service import dispatch_establishment_notifications
from ..services.warranty import (
    WarrantyRegistrationService,
    PatientInfo,
    WarrantyError,
    BindingForbiddenError,
)
from ..services.warranty.serializers import patient_view
from ..services.warranty.validators import sanitize_text
from .errors import error_to_http, forbidden

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/warranty", tags=["warranty"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class Step1Request(BaseModel):
    """Serial number(s) and surgery date."""
    product_serial_number: str
    product_serial_number_2: Optional[str] = None
    surgery_date: date


class Step2Request(BaseModel):
    """Patient details. Identity number is checksum-tested only when local."""
    patient_name: str = Field(min_length=2, max_length=100)
    is_local_identity: bool = True
    patient_id: str = Field(min_length=1, max_length=50)
    patient_birth_date: date
    patient_phone: str = Field(min_length=1, max_length=50)
    patient_email: EmailStr
    hospital_name: str = Field(min_length=2, max_length=200)
    doctor_name: str = Field(min_length=2, max_length=100)

    # Runs before the length constraints so they apply to the stored value
    @field_validator('patient_name', 'hospital_name', 'doctor_name', 'patient_id', 'patient_phone', mode='before')
    @classmethod
    def sanitize(cls, v):
        if isinstance(v, str):
            return sanitize_text(v)
        return v


class StepResponse(BaseModel):
    step: int
    warranty: Optional[Dict[str, Any]] = None


class StatusResponse(BaseModel):
    step: int


# =============================================================================
# HELPERS
# =============================================================================

def get_registration_service(db: Session = Depends(get_db)) -> WarrantyRegistrationService:
    return WarrantyRegistrationService(db)


def _set_binding_cookie(response: Response, token: str, max_age: int) -> None:
    response.set_cookie(
        key=WARRANTY_STEP_COOKIE,
        value=token,
        max_age=max_age,
        expires=datetime.now(timezone.utc) + timedelta(seconds=max_age),
        path="/",
        secure=WARRANTY_COOKIE_SECURE,
        httponly=True,
        samesite="none",
    )


def _clear_binding_cookie(response: Response) -> None:
    response.delete_cookie(
        key=WARRANTY_STEP_COOKIE,
        path="/",
        secure=WARRANTY_COOKIE_SECURE,
        httponly=True,
        samesite="none",
    )


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.get("/serial-check")
async def check_serial(
    warranty_id: Optional[str] = Query(None),
    serial_number: Optional[str] = Query(None),
    service: WarrantyRegistrationService = Depends(get_registration_service),
):
    """
    Tell the step-1 form whether a serial can still be registered.

    Answers only for blank records; anything else is a bare 403.
    """
    if not warranty_id:
        return forbidden()

    try:
        result = service.check_serial(warranty_id, serial_number or "")
    except BindingForbiddenError:
        return forbidden()
    except WarrantyError as e:
        raise error_to_http(e)

    if result.exists:
        return JSONResponse(
            status_code=409,
            content={"exists": True, "product_id": "", "message": "Serial number already registered"},
        )
    return {"exists": False, "product_id": result.product_id, "message": "Serial number is available"}


@router.post("/{warranty_id}/step1", response_model=StepResponse)
async def register_step1(
    warranty_id: str,
    body: Step1Request,
    request: Request,
    response: Response,
    service: WarrantyRegistrationService = Depends(get_registration_service),
):
    """
    Verify serial number(s) and lock the surgery date.

    Zero-year products end the flow at step 9 and no cookie is issued.
    """
    try:
        result = service.register_serials(
            warranty_id,
            body.product_serial_number,
            body.product_serial_number_2,
            body.surgery_date,
            context=audit_context_from_request(request),
        )
    except BindingForbiddenError:
        return forbidden()
    except WarrantyError as e:
        raise error_to_http(e)

    if result.binding_token:
        _set_binding_cookie(response, result.binding_token, service.binding.max_age_seconds)

    return StepResponse(step=int(result.step), warranty=patient_view(result.record))


@router.put("/{warranty_id}/step2", response_model=StepResponse)
async def register_step2(
    warranty_id: str,
    body: Step2Request,
    request: Request,
    response: Response,
    service: WarrantyRegistrationService = Depends(get_registration_service),
):
    """Fill (or re-fill) patient details. Requires the binding cookie."""
    try:
        service.verify_binding(request.cookies.get(WARRANTY_STEP_COOKIE), warranty_id, "fill_patient_info")
        result = service.fill_patient_info(
            warranty_id,
            PatientInfo(
                patient_name=body.patient_name,
                patient_id=body.patient_id,
                is_local_identity=body.is_local_identity,
                patient_birth_date=body.patient_birth_date,
                patient_phone=body.patient_phone,
                patient_email=str(body.patient_email),
                hospital_name=body.hospital_name,
                doctor_name=body.doctor_name,
            ),
            context=audit_context_from_request(request),
        )
    except BindingForbiddenError:
        return forbidden()
    except WarrantyError as e:
        raise error_to_http(e)

    _set_binding_cookie(response, result.binding_token, service.binding.max_age_seconds)
    return StepResponse(step=int(result.step), warranty=patient_view(result.record))


@router.put("/{warranty_id}/step3", response_model=StepResponse)
async def register_step3(
    warranty_id: str,
    request: Request,
    response: Response,
    background_tasks: BackgroundTasks,
    service: WarrantyRegistrationService = Depends(get_registration_service),
    session_factory=Depends(get_session_factory),
):
    """
    Confirm the registration. Notifications go out after the response.
    """
    def schedule(record_id: str) -> None:
        background_tasks.add_task(dispatch_establishment_notifications, record_id, session_factory)

    try:
        service.verify_binding(request.cookies.get(WARRANTY_STEP_COOKIE), warranty_id, "confirm")
        result = service.confirm(
            warranty_id,
            context=audit_context_from_request(request),
            notify=schedule,
        )
    except BindingForbiddenError:
        return forbidden()
    except WarrantyError as e:
        raise error_to_http(e)

    _clear_binding_cookie(response)
    return StepResponse(step=int(result.step), warranty=patient_view(result.record))


@router.get("/{warranty_id}/status", response_model=StatusResponse)
async def get_status(
    warranty_id: str,
    service: WarrantyRegistrationService = Depends(get_registration_service),
):
    """Current step of the record, so the frontend can resume."""
    try:
        step = service.get_step(warranty_id)
    except WarrantyError as e:
        raise error_to_http(e)
    return StatusResponse(step=int(step))


@router.get("/{warranty_id}")
async def get_in_progress(
    warranty_id: str,
    request: Request,
    service: WarrantyRegistrationService = Depends(get_registration_service),
):
    """What the patient has entered so far, without identity or phone."""
    try:
        service.verify_binding(request.cookies.get(WARRANTY_STEP_COOKIE), warranty_id, "fill_patient_info")
        return service.get_in_progress(warranty_id)
    except BindingForbiddenError:
        return forbidden()
    except WarrantyError as e:
        raise error_to_http(e)
