"""
AUTHTOTP REST API.

FastAPI-based REST API for TOTP enrollment, validation and recovery.
"""
from .main import app, create_app

__all__ = ["app", "create_app"]
