"""
Error taxonomy shared by the ledger, the relays and the HTTP backend.

Every error carries the HTTP status it maps to and the short message
returned to callers in the JSON error body.
"""


class AssistantError(Exception):
    """Base class for errors that map onto an HTTP response."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class RequestValidationError(AssistantError):
    """A required field is missing or malformed."""
    status_code = 400


class AccountNotFound(AssistantError):
    """No account exists for the given id."""
    status_code = 404

    def __init__(self, account_id: str, message: str = "User not found"):
        super().__init__(message)
        self.account_id = account_id


class AllowanceExceeded(AssistantError):
    """A metered account has no allowance left for a billed action."""
    status_code = 429

    def __init__(self, account_id: str, message: str = "Token limit exceeded"):
        super().__init__(message)
        self.account_id = account_id


class UpstreamFailure(AssistantError):
    """The speech-to-text or chat-completion engine failed."""
    status_code = 500


class EmptyReply(UpstreamFailure):
    """The chat-completion engine answered with no text."""

    MESSAGE = "No response from AI"

    def __init__(self, message: str = MESSAGE):
        super().__init__(message)


class AuthenticationError(AssistantError):
    """Missing or invalid bearer token."""
    status_code = 401


class IdentityError(Exception):
    """Raised by identity providers for rejected sign-in or sign-up attempts."""
