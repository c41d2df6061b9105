"""
API Routes for AUTHTOTP.
"""
from .totp import router as totp_router
from .health import router as health_router

__all__ = [
    "totp_router",
    "health_router",
]
