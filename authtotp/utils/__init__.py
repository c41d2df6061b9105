"""
Shared utilities for AUTHTOTP.

This package provides:
- Configuration loaded from the environment and secret files
"""
from .config import Settings, load_settings, read_secret

__all__ = ["Settings", "load_settings", "read_secret"]
