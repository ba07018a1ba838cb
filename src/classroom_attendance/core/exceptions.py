class DomainError(Exception):
    """Base exception for business rule violations."""


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""


class LimitExceededError(ValidationError):
    """Raised when a class has no room for another enrollment entry."""


class NotFoundError(DomainError):
    """Raised when a referenced entity does not exist."""


class ConflictError(DomainError):
    """Raised when a state machine guard rejects the operation."""


class InvalidStateError(ConflictError):
    """Raised when an enrollment entry is not in the state a transition needs."""


class AuthenticationError(DomainError):
    """Raised when login credentials are invalid."""


class AuthorizationError(DomainError):
    """Raised when a user lacks permission for an action."""


class InternalError(DomainError):
    """Raised when the storage layer cannot serve the request."""
