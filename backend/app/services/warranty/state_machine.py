"""
Registration State Machine

Deterministic, forward-only state machine for patient warranty registration.

    BLANK(0) → SERIAL_VERIFIED(1) → PATIENT_INFO_FILLED(2) → ESTABLISHED(3)
    BLANK(0) → VERIFIED_WITHOUT_WARRANTY(9)

Each patient action names the steps it may start from and the step it lands
on. PATIENT_INFO_FILLED may be re-submitted (idempotent). ESTABLISHED and
VERIFIED_WITHOUT_WARRANTY are terminal for the patient flow.

Preconditions are checked before any mutation. The persisted write repeats
the step check (`WHERE step = :expected`) so two concurrent requests from
the same step cannot both succeed.
"""
from typing import Dict, Any, List, Tuple, Type

from ...models.db_models import WarrantyStep
from .errors import (
    WarrantyStateConflictError,
    WarrantyAlreadyFilledError,
    WarrantyCannotBeFilledError,
    WarrantyCannotBeConfirmedError,
)


# =============================================================================
# STATE CONFIGURATION
# =============================================================================

STATE_CONFIG: Dict[WarrantyStep, Dict[str, Any]] = {
    WarrantyStep.BLANK: {
        "description": "Created by batch operation, no patient data",
        "allowed_transitions": [
            WarrantyStep.SERIAL_VERIFIED,
            WarrantyStep.VERIFIED_WITHOUT_WARRANTY,
        ],
    },
    WarrantyStep.SERIAL_VERIFIED: {
        "description": "Serials verified, surgery date and warranty window locked",
        "allowed_transitions": [WarrantyStep.PATIENT_INFO_FILLED],
    },
    WarrantyStep.PATIENT_INFO_FILLED: {
        "description": "Patient identity and clinical details filled",
        "allowed_transitions": [
            WarrantyStep.PATIENT_INFO_FILLED,
            WarrantyStep.ESTABLISHED,
        ],
    },
    WarrantyStep.ESTABLISHED: {
        "description": "Warranty confirmed by the patient",
        "allowed_transitions": [],  # Terminal state
    },
    WarrantyStep.VERIFIED_WITHOUT_WARRANTY: {
        "description": "Serials verified, product carries no warranty",
        "allowed_transitions": [],  # Terminal state
    },
}


# Patient actions: which steps they start from and the error for any other step
ACTION_CONFIG: Dict[str, Dict[str, Any]] = {
    "register_serials": {
        "from_steps": [WarrantyStep.BLANK],
        "error": WarrantyAlreadyFilledError,
    },
    "fill_patient_info": {
        "from_steps": [WarrantyStep.SERIAL_VERIFIED, WarrantyStep.PATIENT_INFO_FILLED],
        "error": WarrantyCannotBeFilledError,
    },
    "confirm": {
        "from_steps": [WarrantyStep.PATIENT_INFO_FILLED],
        "error": WarrantyCannotBeConfirmedError,
    },
}


class RegistrationStateMachine:
    """
    Transition rules for warranty registration.

    Pure: holds no record and touches no storage.
    """

    def get_state_config(self, step: WarrantyStep) -> Dict[str, Any]:
        return STATE_CONFIG.get(step, {})

    def to_step(self, value: int) -> WarrantyStep:
        try:
            return WarrantyStep(int(value))
        except ValueError:
            raise WarrantyStateConflictError(f"Unknown warranty step {value}")

    def can_transition(self, from_step: WarrantyStep, to_step: WarrantyStep) -> Tuple[bool, str]:
        """
        Check if a step transition is allowed.

        Returns (allowed, reason)
        """
        allowed_transitions = self.get_state_config(from_step).get("allowed_transitions", [])
        if to_step in allowed_transitions:
            return True, "Transition allowed"
        return False, f"Cannot transition from {from_step.name} to {to_step.name}"

    def steps_for(self, action: str) -> List[WarrantyStep]:
        """Steps an action may start from. Also the steps a binding token must prove."""
        return list(ACTION_CONFIG[action]["from_steps"])

    def error_for(self, action: str) -> Type[WarrantyStateConflictError]:
        return ACTION_CONFIG[action]["error"]

    def require(self, action: str, current: int, to_step: WarrantyStep) -> WarrantyStep:
        """
        Assert that `action` may move a record at `current` to `to_step`.

        Returns the current step. Raises the action's state-conflict error.
        """
        error = self.error_for(action)
        try:
            from_step = self.to_step(current)
        except WarrantyStateConflictError:
            raise error()

        if from_step not in self.steps_for(action):
            raise error()

        allowed, _ = self.can_transition(from_step, to_step)
        if not allowed:
            raise error()
        return from_step

    def is_terminal_state(self, step: WarrantyStep) -> bool:
        return len(self.get_state_config(step).get("allowed_transitions", [])) == 0

    def requires_binding(self, step: WarrantyStep) -> bool:
        """
        Whether a record landing on `step` still needs a device binding.

        Every step the patient can reach that is not terminal.
        """
        return step != WarrantyStep.BLANK and not self.is_terminal_state(step)
