"""Custom exception hierarchy."""


class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class ValidationError(AppError):
    """Raised when input is malformed or incomplete. Nothing has been written."""
    pass


class NotFoundError(AppError):
    """Raised when a referenced assertion, entity or document does not exist."""

    def __init__(self, resource: str, resource_id: object, original_error: Exception = None):
        super().__init__(f"{resource} not found: {resource_id}", original_error)
        self.resource = resource
        self.resource_id = resource_id


class ConflictError(AppError):
    """Raised when an operation is not allowed in the current state.

    Used for corrections against an assertion that is already retracted or
    superseded.
    """
    pass


class UpstreamError(AppError):
    """Raised when an external collaborator (fetch, embed, extract, vector, graph) fails."""
    pass


class APIClientError(UpstreamError):
    """Raised when an external HTTP API call fails."""
    pass


class APITimeoutError(APIClientError):
    """Raised when an external HTTP API call times out."""
    pass
