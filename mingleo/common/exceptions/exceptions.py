# mingleo/common/exceptions/exceptions.py
# =============================================================================
# Custom exceptions for the Mingleo client core
# =============================================================================


class MingleoException(Exception):
    """Base exception for Mingleo"""
    pass


class AuthenticationError(MingleoException):
    """Raised when sign-in, sign-up or session restore fails"""
    pass


class AccessDeniedError(MingleoException):
    """Raised when the backend authorization policy rejects the caller.

    Never retried. The user-facing message stays generic.
    """

    def __init__(self, message: str = "Access denied", detail: str = None):
        super().__init__(message)
        self.detail = detail


# Alias for compatibility
AuthorizationError = AccessDeniedError


class ValidationError(MingleoException):
    """Raised when input validation fails"""
    pass


class NotFoundError(MingleoException):
    """Raised when a referenced resource no longer exists. Never retried."""
    pass


# Alias for compatibility
ResourceNotFoundError = NotFoundError


class ConflictError(MingleoException):
    """Raised on a uniqueness violation (e.g., duplicate reaction)"""
    pass


class TransientError(MingleoException):
    """Raised on network/backend hiccups. Retryable by the user."""
    pass


class InfrastructureError(MingleoException):
    """Raised for misconfiguration of external collaborators"""
    pass
