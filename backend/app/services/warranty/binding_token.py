"""
Device-Binding Token

Proves that the browser continuing a registration is the one that started
it, without a patient account. The token is a signed JWT whose subject is
"{record_id}-{step}"; it lives in an HTTP-only cookie for about a year
because patients may resume days or months after surgery.

Verification fails closed: a missing, expired, tampered or mismatched token
is simply "not valid", never an exception.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from jose import JWTError, jwt

from ...config import JWT_ALGORITHM, WARRANTY_STEP_SECRET, WARRANTY_STEP_TTL_DAYS

logger = logging.getLogger(__name__)

TOKEN_TYPE = "warranty_step"


def binding_subject(record_id: str, step: int) -> str:
    return f"{record_id}-{int(step)}"


class DeviceBindingToken:
    """Issue and verify step-continuity tokens."""

    def __init__(
        self,
        secret: str = WARRANTY_STEP_SECRET,
        ttl_days: int = WARRANTY_STEP_TTL_DAYS,
        algorithm: str = JWT_ALGORITHM,
    ):
        self.secret = secret
        self.ttl = timedelta(days=ttl_days)
        self.algorithm = algorithm

    def issue(self, record_id: str, step: int) -> str:
        now = datetime.now(timezone.utc)
        claims = {
            "sub": binding_subject(record_id, step),
            "typ": TOKEN_TYPE,
            "iat": now,
            "exp": now + self.ttl,
        }
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)

    def verify(self, token: Optional[str], record_id: str, acceptable_steps: Iterable[int]) -> bool:
        if not token:
            return False

        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except JWTError:
            logger.info(f"Rejected warranty binding token for {record_id}")
            return False

        if payload.get("typ") != TOKEN_TYPE:
            return False

        subject = payload.get("sub")
        return any(subject == binding_subject(record_id, step) for step in acceptable_steps)

    @property
    def max_age_seconds(self) -> int:
        return int(self.ttl.total_seconds())
