"""Pure transition table for the onboarding flow.

Nothing here touches the network or the clock. Each function takes the current
``FlowState`` and returns the next one; when moving forward needs the backend,
``advance`` returns the ``Effect`` the controller must run, and the controller
feeds the outcome back through ``apply_success`` / ``apply_failure``.

Password strategy::

    start -> email -> password (existing)  -> signed in
                   -> name -> password (new) -> signed up

One-time-code strategy::

    start -> email -> (request code) -> code -> (verify) -> signed in
                                                        -> name -> profile saved
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from authflow.models.flow import (
    CheckStatus,
    ExistenceCheck,
    FlowOutcome,
    FlowState,
    Step,
)
from authflow.models.options import AuthMode
from authflow.validators import (
    is_valid_code,
    is_valid_email,
    is_valid_name,
    is_valid_password,
)

EMAIL_INVALID = "Input email correctly"
EMAIL_CHECKING = "Checking email…"
NAME_REQUIRED = "Please enter your name"
PASSWORD_TOO_SHORT = "At least 8 characters, for your security's sake"
CODE_INVALID = "Enter the 6-digit code from your email"

LABEL_START = "SIGN IN"
LABEL_CONTINUE = "CONTINUE"


class Effect(StrEnum):
    REQUEST_CODE = "request_code"
    RESEND_CODE = "resend_code"
    VERIFY_CODE = "verify_code"
    SIGN_IN = "sign_in"
    SIGN_UP = "sign_up"
    UPDATE_PROFILE = "update_profile"


_OUTCOMES = {
    Effect.SIGN_IN: FlowOutcome.SIGNED_IN,
    Effect.SIGN_UP: FlowOutcome.SIGNED_UP,
    Effect.UPDATE_PROFILE: FlowOutcome.PROFILE_COMPLETED,
}


@dataclass(frozen=True)
class Advance:
    """Next state, plus the backend effect to run before the step can move."""

    state: FlowState
    effect: Effect | None = None


def initial_state(start_at: Step = Step.START, request_id: int = 0) -> FlowState:
    return FlowState(step=start_at, check=ExistenceCheck(request_id=request_id))


def invalidated(check: ExistenceCheck) -> ExistenceCheck:
    """Back to idle under a fresh request id, so in-flight lookups go stale."""
    return ExistenceCheck(request_id=check.request_id + 1)


# ---------------------------------------------------------------------------
# Derived values
# ---------------------------------------------------------------------------


def is_new_user(state: FlowState, mode: AuthMode) -> bool:
    if mode is AuthMode.OTP:
        return state.verified_new_user is True
    return state.check.status is CheckStatus.READY and state.check.exists is False


def is_existing_user(state: FlowState, mode: AuthMode) -> bool:
    if mode is AuthMode.OTP:
        return state.verified_new_user is False
    return state.check.status is CheckStatus.READY and state.check.exists is True


def can_continue(state: FlowState, mode: AuthMode) -> bool:
    if state.busy or state.completed:
        return False
    if state.step is Step.START:
        return True
    if state.step is Step.EMAIL:
        if not is_valid_email(state.email):
            return False
        return mode is AuthMode.OTP or state.check.status is CheckStatus.READY
    if state.step is Step.CODE:
        return is_valid_code(state.code_input)
    if state.step is Step.NAME:
        return is_valid_name(state.name)
    if state.step is Step.PASSWORD:
        return is_valid_password(state.password)
    return False


def can_resend_code(state: FlowState) -> bool:
    return (
        state.step is Step.CODE
        and state.resend_seconds <= 0
        and not state.busy
        and not state.completed
    )


def primary_button_label(step: Step) -> str:
    return LABEL_START if step is Step.START else LABEL_CONTINUE


# ---------------------------------------------------------------------------
# Moving forward
# ---------------------------------------------------------------------------


def advance(state: FlowState, mode: AuthMode) -> Advance:
    """Primary action. Field checks run here, before any backend call."""
    if state.busy or state.completed:
        return Advance(state)
    state = state.evolve(error_message="")

    if state.step is Step.START:
        return Advance(state.evolve(step=Step.EMAIL, check=invalidated(state.check)))

    if state.step is Step.EMAIL:
        if not is_valid_email(state.email):
            return Advance(state.evolve(error_message=EMAIL_INVALID))
        if mode is AuthMode.OTP:
            return Advance(state, Effect.REQUEST_CODE)
        if state.check.status is not CheckStatus.READY:
            return Advance(state.evolve(error_message=EMAIL_CHECKING))
        next_step = Step.PASSWORD if state.check.exists else Step.NAME
        return Advance(state.evolve(step=next_step))

    if state.step is Step.CODE:
        if not is_valid_code(state.code_input):
            return Advance(state.evolve(error_message=CODE_INVALID))
        return Advance(state, Effect.VERIFY_CODE)

    if state.step is Step.NAME:
        if not is_valid_name(state.name):
            return Advance(state.evolve(error_message=NAME_REQUIRED))
        if mode is AuthMode.OTP:
            return Advance(state, Effect.UPDATE_PROFILE)
        return Advance(state.evolve(step=Step.PASSWORD))

    if state.step is Step.PASSWORD:
        return submit_password(state)

    return Advance(state)


def submit_password(state: FlowState) -> Advance:
    state = state.evolve(error_message="")
    if not is_valid_password(state.password):
        return Advance(state.evolve(error_message=PASSWORD_TOO_SHORT))
    if state.check.exists is False:
        if not is_valid_name(state.name):
            return Advance(state.evolve(error_message=NAME_REQUIRED))
        return Advance(state, Effect.SIGN_UP)
    return Advance(state, Effect.SIGN_IN)


def resend(state: FlowState) -> Advance:
    if not can_resend_code(state):
        return Advance(state)
    return Advance(state.evolve(error_message=""), Effect.RESEND_CODE)


# ---------------------------------------------------------------------------
# Moving back
# ---------------------------------------------------------------------------


def retreat(state: FlowState, mode: AuthMode) -> FlowState:
    if state.busy or state.completed:
        return state
    state = state.evolve(error_message="")

    if state.step is Step.PASSWORD:
        if state.check.exists is False:
            return state.evolve(step=Step.NAME, password="")
        return state.evolve(step=Step.EMAIL, password="", check=invalidated(state.check))

    if state.step is Step.NAME:
        if mode is AuthMode.OTP:
            # The code is already verified; only finishing or closing remain.
            return state
        return state.evolve(step=Step.EMAIL, name="", check=invalidated(state.check))

    if state.step is Step.CODE:
        return state.evolve(
            step=Step.EMAIL, code_input="", resend_seconds=0, check=invalidated(state.check)
        )

    if state.step is Step.EMAIL:
        return state.evolve(step=Step.START, email="", check=invalidated(state.check))

    return state


def edit_email(state: FlowState, mode: AuthMode) -> FlowState:
    """Password step link back to the email field (existing-user path only)."""
    if state.busy or state.completed:
        return state
    if mode is not AuthMode.PASSWORD or state.step is not Step.PASSWORD:
        return state
    if state.check.exists is not True:
        return state
    return state.evolve(
        step=Step.EMAIL,
        password="",
        error_message="",
        check=invalidated(state.check),
    )


def reset(state: FlowState, start_at: Step) -> FlowState:
    return initial_state(start_at, request_id=state.check.request_id + 1)


# ---------------------------------------------------------------------------
# Effect outcomes
# ---------------------------------------------------------------------------


def apply_success(
    state: FlowState,
    effect: Effect,
    *,
    is_new_identity: bool = False,
    resend_window: int = 30,
) -> FlowState:
    state = state.evolve(busy=False, error_message="")

    if effect in (Effect.REQUEST_CODE, Effect.RESEND_CODE):
        return state.evolve(step=Step.CODE, code_input="", resend_seconds=resend_window)

    if effect is Effect.VERIFY_CODE:
        state = state.evolve(verified_new_user=is_new_identity, resend_seconds=0)
        if is_new_identity:
            return state.evolve(step=Step.NAME, code_input="")
        return _complete(state, FlowOutcome.VERIFIED)

    return _complete(state, _OUTCOMES[effect])


def apply_failure(state: FlowState, message: str) -> FlowState:
    return state.evolve(busy=False, error_message=message)


def _complete(state: FlowState, outcome: FlowOutcome) -> FlowState:
    return state.evolve(completed=True, outcome=outcome, password="", code_input="")
