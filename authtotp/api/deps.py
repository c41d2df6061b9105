"""
FastAPI Dependencies for AUTHTOTP API.

Provides:
- Service construction from settings
- Per-app service and settings lookup

The service lives on app.state, so tests can build an app around their own
service (fixed clock, in-memory repository) without touching globals.
"""
import logging
import threading

from fastapi import Request

from ..auth.ratelimit import TokenBucketLimiter
from ..auth.recovery import RecoveryCodeManager
from ..auth.service import TwoFactorService
from ..auth.totp import OTPGenerator
from ..auth.verifier import WindowVerifier
from ..database import create_repository
from ..security.cipher import SecretCipher
from ..utils.config import Settings, load_settings

logger = logging.getLogger(__name__)

_build_lock = threading.Lock()


def build_service(settings: Settings) -> TwoFactorService:
    """
    Wire the two-factor service from settings.

    Raises:
        InvalidKeyLength: If the master key is not 32 bytes.
        ValueError: On an invalid window size or storage backend.
    """
    cipher = SecretCipher(settings.master_key)
    verifier = WindowVerifier(OTPGenerator(), window=settings.window_size)
    limiter = TokenBucketLimiter(
        rate=settings.rate_limit_refill_seconds,
        capacity=settings.rate_limit_capacity,
        max_entries=settings.rate_limit_max_entries,
    )
    repository = create_repository(settings)

    logger.info(
        f"Two-factor service ready: backend={settings.storage_backend}, "
        f"window={settings.window_size}, "
        f"rate_limit={settings.rate_limit_capacity}/{settings.rate_limit_refill_seconds}s"
    )

    return TwoFactorService(
        repository=repository,
        cipher=cipher,
        verifier=verifier,
        limiter=limiter,
        recovery=RecoveryCodeManager(),
        issuer=settings.app_name,
    )


def get_settings(request: Request) -> Settings:
    """Get settings for this app, loading them from the environment once."""
    state = request.app.state
    if getattr(state, "settings", None) is None:
        state.settings = load_settings()
    return state.settings


def get_service(request: Request) -> TwoFactorService:
    """Get the two-factor service for this app, building it on first use."""
    state = request.app.state
    if getattr(state, "service", None) is None:
        with _build_lock:
            if getattr(state, "service", None) is None:
                state.service = build_service(get_settings(request))
    return state.service
