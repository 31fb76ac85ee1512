"""
Domain errors raised by the service layer.

Outcomes such as "conflict" or "no-op" are not errors; services return them
as enum members. Everything here is translated to an HTTP status by
``mtgleader.api.errors``.
"""

from typing import Dict, Optional


class DomainError(Exception):
    """Base class for errors the API layer knows how to render."""

    code = "internal"
    message = "internal error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class ValidationError(DomainError):
    """Input failed validation. ``fields`` maps field name to reason."""

    code = "validation_error"
    message = "validation failed"

    def __init__(self, fields: Dict[str, str]):
        self.fields = dict(fields)
        super().__init__("validation failed: " + ", ".join(
            f"{field}: {reason}" for field, reason in sorted(self.fields.items())
        ))


class NotFoundError(DomainError):
    code = "not_found"
    message = "not found"


class ForbiddenError(DomainError):
    code = "forbidden"
    message = "forbidden"


class UnauthorizedError(DomainError):
    code = "unauthorized"
    message = "unauthorized"


class InvalidCredentialsError(DomainError):
    code = "invalid_credentials"
    message = "invalid credentials"


class UserDisabledError(DomainError):
    code = "user_disabled"
    message = "user is disabled"


class FriendshipExistsError(DomainError):
    code = "friendship_exists"
    message = "friendship already exists"


class UsernameTakenError(DomainError):
    code = "username_taken"
    message = "username is already taken"


class EmailTakenError(DomainError):
    code = "email_taken"
    message = "email is already registered"


class ResetTokenInvalidError(DomainError):
    code = "reset_token_invalid"
    message = "reset token is invalid"


class ResetTokenExpiredError(DomainError):
    code = "reset_token_expired"
    message = "reset token has expired"


class InvalidUpdatedAtError(ValidationError):
    """A client watermark that is not ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""

    code = "invalid_updated_at"

    def __init__(self):
        super().__init__({"updated_at": "must be RFC3339 UTC with milliseconds"})
