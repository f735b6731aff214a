"""Error kinds surfaced by the matching core.

All of them are caller errors: they are reported as-is and never retried.
Store / driver faults are *not* wrapped and propagate unchanged.
"""


class RideShareError(Exception):
    """Base class for caller-facing domain errors."""


class NotFoundError(RideShareError):
    """A referenced ride, match or user does not exist."""


class PermissionDeniedError(RideShareError):
    """The caller does not own the ride implicated by the operation."""


class InvalidStateError(RideShareError):
    """A status or compatibility precondition does not hold."""


class ConstraintViolationError(InvalidStateError):
    """A lifecycle rule was broken, e.g. cancelling a cancelled ride."""
