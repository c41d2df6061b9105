"""
Error taxonomy for AUTHTOTP.

Every error raised by the two-factor core derives from TwoFactorError and
carries the HTTP status and machine-readable code the API layer reports.

Internal errors (decryption, secret encoding, random source) indicate data
corruption or tampering rather than user mistakes. They are logged
server-side and surfaced with a generic message only.
"""
from typing import Optional


class TwoFactorError(Exception):
    """Base class for all two-factor errors."""
    status_code = 500
    code = "INTERNAL_ERROR"
    public_message = "Internal error"
    internal = False

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.public_message)


class InvalidInput(TwoFactorError):
    """Malformed request, e.g. a code of the wrong length."""
    status_code = 400
    code = "INVALID_INPUT"
    public_message = "Invalid input"


class NotFound(TwoFactorError):
    """Unknown identity."""
    status_code = 404
    code = "NOT_FOUND"
    public_message = "User not found"


class UserNotFound(NotFound):
    """Raised by repositories when no record exists for an identity."""


class AlreadyEnabled(TwoFactorError):
    status_code = 409
    code = "ALREADY_ENABLED"
    public_message = "TOTP already enabled"


class NotEnabled(TwoFactorError):
    status_code = 412
    code = "NOT_ENABLED"
    public_message = "TOTP not enabled"


class RateLimited(TwoFactorError):
    """Too many attempts for this identity. Safe to retry after backoff."""
    status_code = 429
    code = "RATE_LIMITED"
    public_message = "Too many attempts. Try again later."

    def __init__(self, message: Optional[str] = None, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class Unauthorized(TwoFactorError):
    """
    Code or recovery code did not validate.

    Same external shape regardless of why validation failed.
    """
    status_code = 401
    code = "UNAUTHORIZED"
    public_message = "Invalid code"


class DecryptionFailed(TwoFactorError):
    internal = True
    code = "DECRYPTION_FAILED"


class InvalidSecretEncoding(TwoFactorError):
    internal = True
    code = "INVALID_SECRET_ENCODING"


class EncodingError(TwoFactorError):
    """Random source or hashing failure. Fatal to the request only."""
    internal = True
    code = "ENCODING_ERROR"


class InvalidKeyLength(TwoFactorError, ValueError):
    """Master key is not exactly 32 bytes."""
    internal = True
    code = "INVALID_KEY_LENGTH"
