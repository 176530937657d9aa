"""Flow state: the step variant, the existence check, and the observable snapshot."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from authflow.models.options import AuthMode


class Step(StrEnum):
    START = "start"
    EMAIL = "email"
    CODE = "code"
    NAME = "name"
    PASSWORD = "password"


class CheckStatus(StrEnum):
    IDLE = "idle"
    CHECKING = "checking"
    READY = "ready"


class FlowOutcome(StrEnum):
    SIGNED_IN = "signed_in"
    SIGNED_UP = "signed_up"
    VERIFIED = "verified"
    PROFILE_COMPLETED = "profile_completed"


class ExistenceCheck(BaseModel):
    """Result of the "does this email already have an account" lookup.

    ``exists`` is only non-null while ``status`` is READY. ``request_id`` grows
    on every invalidation; async work tagged with an older id is stale.
    """

    model_config = ConfigDict(frozen=True)

    status: CheckStatus = CheckStatus.IDLE
    exists: bool | None = None
    request_id: int = 0


class FlowState(BaseModel):
    """Everything one flow instance knows. Replaced, never mutated in place."""

    model_config = ConfigDict(frozen=True)

    step: Step = Step.START
    name: str = ""
    email: str = ""
    password: str = ""
    code_input: str = ""
    busy: bool = False
    error_message: str = ""
    check: ExistenceCheck = Field(default_factory=ExistenceCheck)
    resend_seconds: int = 0
    completed: bool = False
    outcome: FlowOutcome | None = None
    # Set by code verification when the verified identity has no profile yet.
    verified_new_user: bool | None = None

    def evolve(self, **changes) -> FlowState:
        return self.model_copy(update=changes)


class FlowSnapshot(BaseModel):
    """Read-only view handed to the rendering layer."""

    model_config = ConfigDict(frozen=True)

    mode: AuthMode
    step: Step
    name: str
    email: str
    password: str
    code_input: str
    busy: bool
    error_message: str
    check_status: CheckStatus
    email_exists: bool | None
    resend_seconds: int
    completed: bool
    outcome: FlowOutcome | None

    is_new_user: bool
    is_existing_user: bool
    email_is_valid: bool
    can_continue: bool
    can_resend_code: bool
    primary_button_label: str
