class DomainError(Exception):
    """Base exception for business rule violations.

    Each subclass carries the HTTP status the API answers with; the message
    is shown to the user as-is.
    """

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DomainError):
    """Missing field, bad enum value, rejected upload."""


class NotFound(DomainError):
    status_code = 404


class AlreadyExists(DomainError):
    """Duplicate create."""


class AlreadyMember(DomainError):
    """Duplicate join."""


class NotMember(DomainError):
    """Leave or act on a relation that does not exist."""


class Unauthorized(DomainError):
    status_code = 401


class Forbidden(DomainError):
    """Known identity, insufficient role or ownership."""

    status_code = 403


class Conflict(DomainError):
    """Unique constraint violation surfaced from the store."""

    status_code = 409
