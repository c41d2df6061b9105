"""
Two-factor authentication core for AUTHTOTP.

This package provides:
- TOTP/HOTP code generation (RFC 4226 / RFC 6238)
- Drift-window verification with constant-time comparison
- Per-identity token bucket rate limiting
- Single-use recovery codes
- Enrollment and orchestration (see enrollment.py, service.py)
"""
from .errors import TwoFactorError
from .totp import OTPGenerator, build_provisioning_uri, generate_qr_code_base64
from .verifier import WindowVerifier, SystemClock, FixedClock
from .ratelimit import TokenBucketLimiter
from .recovery import RecoveryCodeManager

__all__ = [
    "TwoFactorError",
    "OTPGenerator",
    "build_provisioning_uri",
    "generate_qr_code_base64",
    "WindowVerifier",
    "SystemClock",
    "FixedClock",
    "TokenBucketLimiter",
    "RecoveryCodeManager",
]
