"""
Two-factor orchestration.

Maps the four externally visible operations onto the core:

- enroll:   generate secret + recovery codes, encrypt, save disabled
- confirm:  decrypt, verify the first code, save enabled
- validate: decrypt, verify (login), no persistence change
- recover:  consume a recovery code, save the reduced set

Every operation asks the rate limiter first, before any load, decryption
or comparison.
"""
import hashlib
import logging
import threading
from typing import List

from .enrollment import Enrollment, EnrollmentService
from .errors import (
    AlreadyEnabled,
    InvalidInput,
    NotEnabled,
    RateLimited,
    Unauthorized,
    UserNotFound,
)
from .ratelimit import TokenBucketLimiter
from .recovery import RecoveryCodeManager
from .verifier import WindowVerifier
from ..database.repository import UserRecord, UserRepository

logger = logging.getLogger(__name__)

# Fixed pool of locks serializing load-modify-save per identity
LOCK_STRIPES = 64


class _StripedLocks:
    def __init__(self, stripes: int = LOCK_STRIPES):
        self._locks: List[threading.Lock] = [threading.Lock() for _ in range(stripes)]

    def for_key(self, key: str) -> threading.Lock:
        digest = hashlib.sha256(key.encode("utf-8")).digest()
        return self._locks[int.from_bytes(digest[:4], "big") % len(self._locks)]


class TwoFactorService:
    """
    TOTP enrollment, verification and recovery for user identities.

    All collaborators are passed in explicitly.

    Example usage:
        service = TwoFactorService(
            repository=InMemoryRepository(),
            cipher=SecretCipher(master_key),
            verifier=WindowVerifier(window=1),
            limiter=TokenBucketLimiter(rate=30, capacity=3),
            issuer="AuthTOTP",
        )
        enrollment = service.enroll("alice")
    """

    def __init__(
        self,
        repository: UserRepository,
        cipher,
        verifier: WindowVerifier,
        limiter: TokenBucketLimiter,
        recovery: RecoveryCodeManager = None,
        enrollment: EnrollmentService = None,
        issuer: str = "AuthTOTP",
    ):
        self.repository = repository
        self.cipher = cipher
        self.verifier = verifier
        self.limiter = limiter
        self.recovery = recovery or RecoveryCodeManager()
        self.enrollment = enrollment or EnrollmentService(
            issuer,
            cipher,
            generator=verifier.generator,
            recovery=self.recovery,
        )
        self._locks = _StripedLocks()

    # ==========================================
    # Helpers
    # ==========================================

    def _check_rate_limit(self, user_id: str) -> None:
        if not self.limiter.allow(user_id):
            raise RateLimited(retry_after=self.limiter.rate)

    def _check_code_length(self, code: str) -> None:
        if len(code) != self.verifier.digits:
            raise InvalidInput(f"Code must be {self.verifier.digits} digits")

    def _verify_record(self, record: UserRecord, code: str) -> None:
        # DecryptionFailed propagates as an internal error
        secret = self.cipher.decrypt(record.encrypted_secret)
        if not self.verifier.verify(secret, code):
            raise Unauthorized()

    # ==========================================
    # Operations
    # ==========================================

    def enroll(self, user_id: str) -> Enrollment:
        """
        Start TOTP enrollment. The record is saved with enabled=False until
        the first code is confirmed.

        Raises:
            RateLimited, AlreadyEnabled, EncodingError
        """
        self._check_rate_limit(user_id)

        with self._locks.for_key(user_id):
            try:
                existing = self.repository.get_user(user_id)
            except UserNotFound:
                existing = None

            if existing is not None and existing.enabled:
                raise AlreadyEnabled()

            enrollment = self.enrollment.enroll(user_id)
            self.repository.save_user(UserRecord(
                user_id=user_id,
                encrypted_secret=enrollment.encrypted_secret,
                enabled=False,
                recovery_codes=enrollment.hashed_codes,
            ))

        logger.info(f"Enrollment started for user {user_id}")
        return enrollment

    def confirm(self, user_id: str, code: str) -> None:
        """
        Verify the first code from the authenticator app and enable TOTP.

        Raises:
            RateLimited, InvalidInput, UserNotFound, AlreadyEnabled,
            Unauthorized, DecryptionFailed
        """
        self._check_rate_limit(user_id)
        self._check_code_length(code)

        with self._locks.for_key(user_id):
            record = self.repository.get_user(user_id)
            if record.enabled:
                raise AlreadyEnabled()

            self._verify_record(record, code)

            record.enabled = True
            self.repository.save_user(record)

        logger.info(f"TOTP enabled for user {user_id}")

    def validate(self, user_id: str, code: str) -> None:
        """
        Check a TOTP code for an enrolled user (login flow).

        Raises:
            RateLimited, InvalidInput, UserNotFound, NotEnabled,
            Unauthorized, DecryptionFailed
        """
        self._check_rate_limit(user_id)
        self._check_code_length(code)

        record = self.repository.get_user(user_id)
        if not record.enabled:
            raise NotEnabled()

        self._verify_record(record, code)
        logger.info(f"TOTP code validated for user {user_id}")

    def recover(self, user_id: str, code: str) -> int:
        """
        Authenticate with a recovery code and consume it.

        Returns:
            Number of recovery codes left.

        Raises:
            RateLimited, InvalidInput, UserNotFound, NotEnabled, Unauthorized
        """
        self._check_rate_limit(user_id)
        if not code or not code.strip():
            raise InvalidInput("Recovery code required")

        with self._locks.for_key(user_id):
            record = self.repository.get_user(user_id)
            if not record.enabled:
                raise NotEnabled()

            remaining, matched = self.recovery.validate_and_consume(code, record.recovery_codes)
            if not matched:
                raise Unauthorized()

            record.recovery_codes = remaining
            self.repository.save_user(record)

        logger.info(f"Recovery code used by user {user_id}, {len(remaining)} remaining")
        return len(remaining)
