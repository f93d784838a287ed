"""Fault taxonomy and exceptions.

Control operations report failure by returning False; the reason is kept as a
``Fault`` on the component for logs and per-step diagnostics. Exceptions are
reserved for transport failures and invalid arguments.
"""

from enum import Enum


class Fault(Enum):
    """Why a control operation failed."""

    TELEMETRY_STALE = "telemetry_stale"
    """A required sensor stream delivered nothing within its timeout."""

    NO_EFFECT = "no_effect"
    """A motion command produced no measurable change after all retries."""

    TOLERANCE_EXCEEDED = "tolerance_exceeded"
    """The achieved pose deviates from the request beyond tolerance."""

    SAFETY_STOP = "safety_stop"
    """A hazard stop did not clear within the allowed wait."""

    SERVICE_UNAVAILABLE = "service_unavailable"
    """A detector or localization service never reported an active status."""

    PHASE_FAILURE = "phase_failure"
    """A multi-step phase exhausted its retries."""

    ABORTED = "aborted"
    """The run was cancelled externally."""

    COMMAND_ERROR = "command_error"
    """The robot interface rejected or could not deliver a command."""


class RobotCommandError(Exception):
    """Raised by a robot interface when a command cannot be delivered."""

    def __init__(self, command: str, reason: str) -> None:
        super().__init__(f"{command}: {reason}")
        self.command = command
        self.reason = reason
