"""
AUTHTOTP - TOTP second factors and recovery codes.
"""
__version__ = "0.1.0"
