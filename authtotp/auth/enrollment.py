"""
TOTP enrollment.

Generates a new shared secret and recovery code batch for an account,
encrypts the secret for storage and builds the provisioning URI.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

from .recovery import RecoveryCodeManager
from .totp import (
    OTPGenerator,
    build_provisioning_uri,
    encode_secret,
    generate_secret,
)

logger = logging.getLogger(__name__)


@dataclass
class Enrollment:
    """Everything produced by one enrollment."""
    secret_b32: str              # for manual entry, shown once
    encrypted_secret: str        # for storage
    provisioning_uri: str        # for QR code generation
    recovery_codes: List[str]    # plaintext, shown once
    hashed_codes: List[str]      # for storage


class EnrollmentService:
    """
    Creates TOTP enrollments.

    Args:
        issuer: Application name shown in authenticator apps.
        cipher: Object with encrypt(bytes) -> str (see security.SecretCipher).
        generator: Code engine whose digits/period go into the URI.
        recovery: Recovery code manager.
    """

    def __init__(
        self,
        issuer: str,
        cipher,
        generator: Optional[OTPGenerator] = None,
        recovery: Optional[RecoveryCodeManager] = None,
    ):
        self.issuer = issuer
        self.cipher = cipher
        self.generator = generator or OTPGenerator()
        self.recovery = recovery or RecoveryCodeManager()

    def enroll(self, account: str) -> Enrollment:
        """
        Generate secret, encrypted blob, URI and recovery codes.

        Raises:
            EncodingError: If the random source fails.
        """
        secret = generate_secret()
        secret_b32 = encode_secret(secret)
        encrypted_secret = self.cipher.encrypt(secret)

        plain_codes, hashed_codes = self.recovery.generate()

        uri = build_provisioning_uri(
            secret_b32,
            account=account,
            issuer=self.issuer,
            digits=self.generator.digits,
            period=self.generator.period,
        )
        logger.debug(f"Generated secret and {len(plain_codes)} recovery codes for {account}")

        return Enrollment(
            secret_b32=secret_b32,
            encrypted_secret=encrypted_secret,
            provisioning_uri=uri,
            recovery_codes=plain_codes,
            hashed_codes=hashed_codes,
        )
