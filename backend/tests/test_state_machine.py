"""
Tests for the registration state machine.

1. Forward-only transitions
2. Action preconditions and their specific errors
3. Terminal states and binding requirements
"""
import pytest

from app.models.db_models import WarrantyStep
from app.services.warranty.errors import (
    WarrantyAlreadyFilledError,
    WarrantyCannotBeFilledError,
    WarrantyCannotBeConfirmedError,
)
from app.services.warranty.state_machine import RegistrationStateMachine, STATE_CONFIG


@pytest.fixture
def machine():
    return RegistrationStateMachine()


class TestTransitions:
    """can_transition()"""

    def test_blank_to_verified_or_no_warranty(self, machine):
        assert machine.can_transition(WarrantyStep.BLANK, WarrantyStep.SERIAL_VERIFIED)[0] is True
        assert machine.can_transition(WarrantyStep.BLANK, WarrantyStep.VERIFIED_WITHOUT_WARRANTY)[0] is True

    def test_step_two_resubmit(self, machine):
        allowed, _ = machine.can_transition(WarrantyStep.PATIENT_INFO_FILLED, WarrantyStep.PATIENT_INFO_FILLED)
        assert allowed is True

    def test_no_backward_moves(self, machine):
        for from_step in STATE_CONFIG:
            for to_step in STATE_CONFIG:
                if machine.can_transition(from_step, to_step)[0]:
                    assert to_step >= from_step

    def test_skip_not_allowed(self, machine):
        allowed, reason = machine.can_transition(WarrantyStep.BLANK, WarrantyStep.ESTABLISHED)
        assert allowed is False
        assert "BLANK" in reason

    def test_terminal_states(self, machine):
        assert machine.is_terminal_state(WarrantyStep.ESTABLISHED) is True
        assert machine.is_terminal_state(WarrantyStep.VERIFIED_WITHOUT_WARRANTY) is True
        assert machine.is_terminal_state(WarrantyStep.SERIAL_VERIFIED) is False

    def test_binding_required_only_mid_flow(self, machine):
        assert machine.requires_binding(WarrantyStep.SERIAL_VERIFIED) is True
        assert machine.requires_binding(WarrantyStep.PATIENT_INFO_FILLED) is True
        assert machine.requires_binding(WarrantyStep.BLANK) is False
        assert machine.requires_binding(WarrantyStep.ESTABLISHED) is False
        assert machine.requires_binding(WarrantyStep.VERIFIED_WITHOUT_WARRANTY) is False


class TestActionPreconditions:
    """require() raises the error specific to the action."""

    def test_register_from_blank(self, machine):
        assert machine.require("register_serials", 0, WarrantyStep.SERIAL_VERIFIED) == WarrantyStep.BLANK

    @pytest.mark.parametrize("current", [1, 2, 3, 9])
    def test_register_twice(self, machine, current):
        with pytest.raises(WarrantyAlreadyFilledError):
            machine.require("register_serials", current, WarrantyStep.SERIAL_VERIFIED)

    @pytest.mark.parametrize("current", [1, 2])
    def test_fill_from_verified_or_filled(self, machine, current):
        assert machine.require("fill_patient_info", current, WarrantyStep.PATIENT_INFO_FILLED) == current

    @pytest.mark.parametrize("current", [0, 3, 9])
    def test_fill_out_of_order(self, machine, current):
        with pytest.raises(WarrantyCannotBeFilledError):
            machine.require("fill_patient_info", current, WarrantyStep.PATIENT_INFO_FILLED)

    @pytest.mark.parametrize("current", [0, 1, 3, 9])
    def test_confirm_out_of_order(self, machine, current):
        with pytest.raises(WarrantyCannotBeConfirmedError):
            machine.require("confirm", current, WarrantyStep.ESTABLISHED)

    def test_unknown_stored_step(self, machine):
        with pytest.raises(WarrantyCannotBeConfirmedError):
            machine.require("confirm", 5, WarrantyStep.ESTABLISHED)

    def test_binding_steps_per_action(self, machine):
        assert machine.steps_for("fill_patient_info") == [
            WarrantyStep.SERIAL_VERIFIED, WarrantyStep.PATIENT_INFO_FILLED
        ]
        assert machine.steps_for("confirm") == [WarrantyStep.PATIENT_INFO_FILLED]
