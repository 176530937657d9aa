"""Data models: configuration surface, flow state, and adapter results."""

from authflow.models.flow import (
    CheckStatus,
    ExistenceCheck,
    FlowOutcome,
    FlowSnapshot,
    FlowState,
    Step,
)
from authflow.models.options import AuthMode, AuthOptions, EmailOptions
from authflow.models.results import (
    Err,
    Ok,
    Result,
    SessionEvent,
    SessionResult,
    UserProfile,
)

__all__ = [
    "AuthMode",
    "AuthOptions",
    "CheckStatus",
    "EmailOptions",
    "Err",
    "ExistenceCheck",
    "FlowOutcome",
    "FlowSnapshot",
    "FlowState",
    "Ok",
    "Result",
    "SessionEvent",
    "SessionResult",
    "Step",
    "UserProfile",
]
