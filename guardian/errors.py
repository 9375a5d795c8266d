"""
Failure taxonomy for Guardian Link.

Authentication and registration failures are raised to the caller for direct
user feedback. Device failures (positioning, beacon) are raised by the device
boundaries and caught by the services that drive them, which log them instead
of letting them reach the event loop.
"""


class GuardianError(Exception):
    """Base class for all typed failures."""

    code = "error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class DuplicateUsername(GuardianError):
    code = "duplicate_username"


class NotFound(GuardianError):
    code = "not_found"


class BadCredentials(GuardianError):
    code = "bad_credentials"


class BadCode(GuardianError):
    code = "bad_code"


class Expired(GuardianError):
    code = "expired"


class PermissionDenied(GuardianError):
    code = "permission_denied"


class NotConnected(GuardianError):
    code = "not_connected"


class WriteError(GuardianError):
    code = "write_error"


class InvalidInput(GuardianError):
    code = "invalid_input"


class StaleCommand(GuardianError):
    """Verdict for a command outside the freshness window. Never raised to callers."""

    code = "stale_command"
