"""
Implant Warranty - Service Error Translation
Maps warranty workflow error categories onto HTTP responses.
"""
import logging

from fastapi import HTTPException, Response, status

from ..services.warranty.errors import WarrantyError

logger = logging.getLogger(__name__)

_CATEGORY_STATUS = {
    "validation": status.HTTP_400_BAD_REQUEST,
    "state_conflict": status.HTTP_409_CONFLICT,
    "authorization": status.HTTP_403_FORBIDDEN,
    "not_found": status.HTTP_404_NOT_FOUND,
}


def error_to_http(exc: WarrantyError) -> HTTPException:
    """
    HTTPException for a workflow error.

    Validation errors carry the offending field. Dependent-service failures
    are logged and answered with a generic message.
    """
    status_code = _CATEGORY_STATUS.get(exc.category)
    if status_code is None:
        logger.error(f"Warranty operation failed: {type(exc).__name__}: {exc.message}")
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error"
        )

    if exc.category == "validation":
        return HTTPException(status_code=status_code, detail={"error": exc.message, "field": exc.field})
    return HTTPException(status_code=status_code, detail=exc.message)


def forbidden() -> Response:
    """403 with an empty body; nothing about the record is revealed."""
    return Response(status_code=status.HTTP_403_FORBIDDEN)
