"""Exception taxonomy for Penny Channel."""


class PennyError(Exception):
    """Base exception for all Penny Channel errors."""


class ConfigError(PennyError):
    """Missing or invalid configuration."""


class ValidationError(PennyError):
    """Caller input rejected before any state change or network call."""


class ConservationViolation(PennyError):
    """Allocations would not sum to the session budget."""


class TransportError(PennyError):
    """Submission to the transport failed (timeout, rejection, version conflict)."""


class SessionStateError(PennyError):
    """Operation not valid in the session's current status."""


class SubmissionInProgress(SessionStateError):
    """A mutating submission is already awaiting acknowledgment."""
