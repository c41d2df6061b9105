"""
Security utilities for AUTHTOTP.

This package provides:
- AES-256-GCM encryption of TOTP secrets at rest
- Master key generation
"""
from .cipher import SecretCipher, generate_master_key

__all__ = [
    "SecretCipher",
    "generate_master_key",
]
