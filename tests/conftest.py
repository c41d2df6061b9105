"""
Pytest configuration and shared fixtures for AUTHTOTP tests.

This module provides common test fixtures for:
- RFC test secrets and a frozen clock
- A fully wired in-memory two-factor service
- Mock Redis client
"""
import pytest

from authtotp.auth.ratelimit import TokenBucketLimiter
from authtotp.auth.recovery import RecoveryCodeManager
from authtotp.auth.service import TwoFactorService
from authtotp.auth.totp import OTPGenerator
from authtotp.auth.verifier import FixedClock, WindowVerifier
from authtotp.database.repository import InMemoryRepository
from authtotp.security.cipher import SecretCipher

# RFC 6238 Appendix B SHA-1 seed
RFC_SECRET = b"12345678901234567890"
RFC_TIMESTAMP = 1234567890


# ============================================
# Clock Fixtures
# ============================================

class FakeMonotonic:
    """Controllable monotonic clock for the rate limiter."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def rfc_secret():
    return RFC_SECRET


@pytest.fixture
def fixed_clock():
    """Wall clock frozen at the RFC 6238 test time 1234567890."""
    return FixedClock(RFC_TIMESTAMP)


@pytest.fixture
def monotonic():
    return FakeMonotonic()


# ============================================
# Service Fixtures
# ============================================

@pytest.fixture
def master_key():
    return bytes(range(32))


@pytest.fixture
def cipher(master_key):
    return SecretCipher(master_key)


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def limiter(monotonic):
    return TokenBucketLimiter(rate=30, capacity=3, clock=monotonic)


@pytest.fixture
def verifier(fixed_clock):
    return WindowVerifier(OTPGenerator(), clock=fixed_clock, window=1)


@pytest.fixture
def service(repository, cipher, verifier, limiter):
    """
    Two-factor service with in-memory storage, a frozen wall clock and a
    controllable rate limiter clock.
    """
    return TwoFactorService(
        repository=repository,
        cipher=cipher,
        verifier=verifier,
        limiter=limiter,
        recovery=RecoveryCodeManager(),
        issuer="AuthTOTP",
    )


# ============================================
# Storage Fixtures
# ============================================

@pytest.fixture
def mock_redis_client():
    """
    Mock Redis client for testing the Redis repository.
    Implements basic get/set/delete operations with in-memory store.
    """
    class MockRedisClient:
        def __init__(self):
            self.store = {}
            self.expiry = {}

        def get(self, key):
            return self.store.get(key)

        def set(self, key, value, ex=None):
            self.store[key] = value
            if ex:
                self.expiry[key] = ex
            return True

        def delete(self, key):
            if key in self.store:
                del self.store[key]
            if key in self.expiry:
                del self.expiry[key]
            return True

        def exists(self, key):
            return key in self.store

        def ping(self):
            return True

    return MockRedisClient()
