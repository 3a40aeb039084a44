"""Call handler error taxonomy.

Each error carries the HTTP status the webhook dispatcher answers with and a
fixed public message. The message passed to the constructor is for logs only
and never reaches the telephony provider.
"""


class CallHandlerError(Exception):
    """Base class for errors raised while handling a call webhook."""

    status_code: int = 500
    public_message: str = "Internal server error"


class ValidationError(CallHandlerError):
    """A required webhook field is missing or malformed."""

    status_code = 400
    public_message = "Invalid webhook payload"


class NotFoundError(CallHandlerError):
    """The referenced call session does not exist."""

    status_code = 404
    public_message = "Call session not found"


class GeneratorError(CallHandlerError):
    """The response generator failed or timed out."""


class StorageError(CallHandlerError):
    """The persistence layer rejected or failed a write."""
