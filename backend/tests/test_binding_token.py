"""
Tests for the device-binding token.

Verification must fail closed: anything other than a valid, unexpired token
for exactly this record at an acceptable step is "not valid".
"""
from uuid import uuid4

from app.auth import decode_token
from app.config import JWT_SECRET_KEY
from app.models.db_models import WarrantyStep
from app.services.warranty.binding_token import DeviceBindingToken, binding_subject


class TestDeviceBindingToken:
    """Issue / verify."""

    def test_subject_format(self):
        assert binding_subject("abc", WarrantyStep.SERIAL_VERIFIED) == "abc-1"

    def test_valid_token(self, binding):
        record_id = str(uuid4())
        token = binding.issue(record_id, WarrantyStep.SERIAL_VERIFIED)
        assert binding.verify(token, record_id, [WarrantyStep.SERIAL_VERIFIED]) is True

    def test_any_acceptable_step(self, binding):
        record_id = str(uuid4())
        token = binding.issue(record_id, WarrantyStep.PATIENT_INFO_FILLED)
        steps = [WarrantyStep.SERIAL_VERIFIED, WarrantyStep.PATIENT_INFO_FILLED]
        assert binding.verify(token, record_id, steps) is True

    def test_wrong_step(self, binding):
        record_id = str(uuid4())
        token = binding.issue(record_id, WarrantyStep.SERIAL_VERIFIED)
        assert binding.verify(token, record_id, [WarrantyStep.PATIENT_INFO_FILLED]) is False

    def test_wrong_record(self, binding):
        token = binding.issue(str(uuid4()), WarrantyStep.SERIAL_VERIFIED)
        assert binding.verify(token, str(uuid4()), [WarrantyStep.SERIAL_VERIFIED]) is False

    def test_missing_token(self, binding):
        assert binding.verify(None, "abc", [1]) is False
        assert binding.verify("", "abc", [1]) is False

    def test_garbage_token(self, binding):
        assert binding.verify("not-a-jwt", "abc", [1]) is False

    def test_expired_token(self):
        expired = DeviceBindingToken(secret="s", ttl_days=-1)
        token = expired.issue("abc", 1)
        assert expired.verify(token, "abc", [1]) is False

    def test_foreign_secret(self, binding):
        forged = DeviceBindingToken(secret="attacker").issue("abc", 1)
        assert binding.verify(forged, "abc", [1]) is False

    def test_max_age_matches_ttl(self, binding):
        assert binding.max_age_seconds == 365 * 24 * 3600


class TestTokenSeparation:
    """Binding tokens and staff access tokens are not interchangeable."""

    def test_binding_token_is_not_a_staff_token(self):
        token = DeviceBindingToken(secret=JWT_SECRET_KEY).issue("abc", 2)
        assert decode_token(token) is None

    def test_staff_token_is_not_a_binding_token(self):
        from app.auth import create_access_token

        shared = DeviceBindingToken(secret=JWT_SECRET_KEY)
        token = create_access_token("abc-1", "admin", "admin")
        assert shared.verify(token, "abc", [1]) is False
