"""
Error taxonomy shared by the sync pipeline, the Gist client and the
Strava activity linker.

Local storage failures are deliberately absent: they are printed and
absorbed where they happen and never reach a caller.
"""


class TrackerError(Exception):
    """Base class for every error the tracker raises."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class NotFoundError(TrackerError):
    """Remote document (or activity) does not exist. Expected on first run."""


class TransientError(TrackerError):
    """Network failure or non-2xx response other than 404/auth."""


class AuthError(TrackerError):
    """Missing, invalid or expired credential."""


class ValidationError(TrackerError):
    """Malformed user input, rejected before any network call."""


class InvalidReferenceError(ValidationError):
    """Activity reference is neither an id nor an activity URL."""


class UpstreamError(TrackerError):
    """External activity API returned an unusable response."""
