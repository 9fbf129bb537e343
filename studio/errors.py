"""
Error taxonomy for the studio core.

Services raise these; the integration facade turns them into result
envelopes. ``code`` follows the document-store error vocabulary so that
store failures and business failures share one user-facing mapping.
"""


class StudioError(Exception):
    """Base class for every error raised by the studio core."""

    code = 'unknown'
    retryable = False

    def __init__(self, message, code=None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    @property
    def kind(self):
        return type(self).__name__


class ValidationError(StudioError):
    """Malformed input, detected before any store write."""

    code = 'invalid-argument'

    def __init__(self, message, errors=None, code=None):
        super().__init__(message, code=code)
        self.errors = errors or {}


class NotFound(StudioError):
    """A referenced document does not exist."""

    code = 'not-found'


class ReferentialIntegrityError(StudioError):
    """A referenced course or schedule vanished after it was added to the cart."""

    code = 'failed-precondition'


class Unauthorized(StudioError):
    """The caller does not own the document it is acting on."""

    code = 'permission-denied'


class InvalidState(StudioError):
    """The document is in a state that does not allow the operation."""

    code = 'failed-precondition'


class CapacityExceededError(InvalidState):
    """A schedule does not have enough free spots left for the request."""


class TransientStoreError(StudioError):
    """Network or contention failure; the store observed no partial effect."""

    code = 'unavailable'
    retryable = True


class UnknownError(StudioError):
    """Anything that could not be classified."""

    code = 'unknown'
