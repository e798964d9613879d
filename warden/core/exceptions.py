"""Custom exception classes for the auth and permission core."""


class WardenError(Exception):
    """Base exception for Warden."""

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class InvalidCredentialError(WardenError):
    """Raised for an unknown email or a wrong password (never distinguished)."""
    pass


class UnauthorizedError(WardenError):
    """Raised when a refresh or access credential cannot be honoured.

    Subclasses exist for audit logging only; the transport layer renders
    all of them identically.
    """
    pass


class InvalidTokenError(UnauthorizedError):
    """Presented refresh token does not match any stored credential."""
    pass


class TokenExpiredError(UnauthorizedError):
    """Presented refresh token is unrevoked but past its expiry."""
    pass


class TokenReuseError(UnauthorizedError):
    """Presented refresh token was already rotated or revoked."""

    def __init__(self, message: str = "Refresh token reuse detected", owner_id=None):
        self.owner_id = owner_id
        super().__init__(message)


class ForbiddenError(WardenError):
    """Raised when the account is disabled, unconfirmed or locked out."""
    pass


class ResourceNotFoundError(WardenError):
    """Raised when a requested role, node or action is not found."""
    pass


class ResourceConflictError(WardenError):
    """Raised when a resource already exists."""
    pass


class ValidationError(WardenError):
    """Raised when input validation fails."""
    pass


class InfrastructureError(WardenError):
    """Raised when the persistence layer fails."""
    pass
