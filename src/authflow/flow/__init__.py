"""Flow controller, its pure transition table, and the timers it drives."""

from authflow.flow.controller import FlowController
from authflow.flow.existence import ExistenceChecker
from authflow.flow.resend import ResendTimer
from authflow.flow.scheduler import AsyncioScheduler, Scheduler
from authflow.flow.transitions import Advance, Effect

__all__ = [
    "Advance",
    "AsyncioScheduler",
    "Effect",
    "ExistenceChecker",
    "FlowController",
    "ResendTimer",
    "Scheduler",
]
