"""
Warranty Window

Derives the effective warranty length of a record from its product(s), the
coverage end date, and the current status classification.

Lifetime coverage is modeled as a far-future end date so every comparison
stays a plain date comparison.
"""
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from dateutil.relativedelta import relativedelta

from ...config import APP_TIMEZONE
from ...models.db_models import (
    LIFETIME_WARRANTY_YEARS, NO_WARRANTY_YEARS, WarrantyStatus
)

LIFETIME_END_DATE = date(9999, 12, 31)


def local_today() -> date:
    """Today in the clinic's timezone; surgery dates are entered locally."""
    return datetime.now(ZoneInfo(APP_TIMEZONE)).date()


def resolve_warranty_years(years: int, years_2: Optional[int] = None) -> int:
    """
    Effective warranty length for a record carrying one or two products.

    - zero-year on either side makes the whole record zero-year
    - lifetime yields to the other side's finite length
    - otherwise the shorter length wins
    """
    if years_2 is None:
        return years

    if years == NO_WARRANTY_YEARS or years_2 == NO_WARRANTY_YEARS:
        return NO_WARRANTY_YEARS
    if years == LIFETIME_WARRANTY_YEARS:
        return years_2
    if years_2 == LIFETIME_WARRANTY_YEARS:
        return years
    return min(years, years_2)


def compute_end_date(start: date, warranty_years: int) -> date:
    if warranty_years == LIFETIME_WARRANTY_YEARS:
        return LIFETIME_END_DATE
    if warranty_years <= NO_WARRANTY_YEARS:
        return start
    # Feb 29 starts land on Feb 28 in non-leap years
    return start + relativedelta(years=warranty_years)


def is_expired(end_date: Optional[date], today: date) -> bool:
    if end_date is None or end_date == LIFETIME_END_DATE:
        return False
    return today >= end_date


def current_status(status: Optional[str], end_date: Optional[date], today: date) -> WarrantyStatus:
    """
    Status as it should read today.

    Unset stays unset, cancelled is sticky and wins over expiry.
    """
    if not status:
        return WarrantyStatus.UNSET
    if status == WarrantyStatus.CANCELLED.value:
        return WarrantyStatus.CANCELLED
    if is_expired(end_date, today):
        return WarrantyStatus.EXPIRED
    return WarrantyStatus.ACTIVE
