"""Exception taxonomy for the Bookworm backend.

Every error carries the HTTP status the API layer answers with. Auth
failures share generic messages so callers cannot tell a missing token
from a deleted account or a rotated secret.
"""

from typing import Optional


class BookwormError(Exception):
    """Base exception for Bookworm"""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, field: Optional[str] = None):
        self.message = message or self.default_message
        self.field = field
        super().__init__(self.message)


class ValidationError(BookwormError):
    """A required field is missing or malformed"""

    status_code = 400
    default_message = "Invalid request"


class InvalidCredentials(BookwormError):
    status_code = 401
    default_message = "Invalid credentials"


class Unauthenticated(BookwormError):
    """No token was presented or it does not resolve to a user"""

    status_code = 401
    default_message = "Not logged in"


class InvalidToken(BookwormError):
    """Token claims are structurally unusable"""

    status_code = 401
    default_message = "Invalid token"


class SessionExpired(BookwormError):
    """Signature or expiry check failed against the user's current secret"""

    status_code = 401
    default_message = "Session expired"


class Forbidden(BookwormError):
    status_code = 403
    default_message = "User is not an admin"


class NotFound(BookwormError):
    status_code = 404
    default_message = "Not found"


class Conflict(BookwormError):
    status_code = 409
    default_message = "Already exists"


class RateLimited(BookwormError):
    """Too many failed verifications from one client"""

    status_code = 429
    default_message = "Too many failed attempts"

    def __init__(self, message: Optional[str] = None, retry_after: Optional[int] = None):
        self.retry_after = retry_after
        super().__init__(message)


class MediaUploadError(BookwormError):
    """Media host rejected or failed an upload"""

    status_code = 502
    default_message = "Media upload failed"
