"""
Pydantic Models for AUTHTOTP API.

Request and response models for all API endpoints.
"""
from datetime import datetime
from typing import Optional, List, Dict
from pydantic import BaseModel, Field, ConfigDict


# ============================================
# TOTP Models
# ============================================

class EnrollRequest(BaseModel):
    """Start TOTP enrollment for a user."""
    user_id: str = Field(..., min_length=1, max_length=255, description="User identity")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"user_id": "alice"}
        }
    )


class EnrollResponse(BaseModel):
    """
    Enrollment response.

    The secret and recovery codes are shown exactly once and never stored
    in the clear. TOTP stays disabled until confirmed with /totp/verify.
    """
    user_id: str
    secret: str = Field(..., description="Base32 secret for manual entry")
    provisioning_uri: str = Field(..., description="otpauth:// URI for authenticator apps")
    qr_code_base64: str = Field(..., description="PNG QR code as data URI")
    recovery_codes: List[str] = Field(..., description="One-time recovery codes (store securely!)")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "user_id": "alice",
                "secret": "JBSWY3DPEHPK3PXPJBSWY3DPEHPK3PXP",
                "provisioning_uri": "otpauth://totp/AuthTOTP:alice?secret=JBSWY3DPEHPK3PXPJBSWY3DPEHPK3PXP"
                                    "&issuer=AuthTOTP&algorithm=SHA1&digits=6&period=30",
                "qr_code_base64": "data:image/png;base64,iVBORw0KGgo...",
                "recovery_codes": [
                    "7KQ2MZXH4P",
                    "R9TWC3N8BD",
                    "HV2XK6JQ5M",
                    "P3LY8ZAE4W",
                    "Q6NB9RTK2C",
                    "W4ZD7HMX3J",
                    "E8UP2VGS6N",
                    "K5RJ3WQY9A"
                ]
            }
        }
    )


class CodeRequest(BaseModel):
    """TOTP or recovery code submitted for a user."""
    user_id: str = Field(..., min_length=1, max_length=255)
    code: str = Field(..., min_length=1, max_length=64)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"user_id": "alice", "code": "123456"}
        }
    )


class StatusResponse(BaseModel):
    """Operation outcome."""
    status: str
    message: Optional[str] = None
    remaining_recovery_codes: Optional[int] = None


# ============================================
# Health Models
# ============================================

class HealthStatus(BaseModel):
    """Health check response."""
    status: str = Field(..., description="healthy or unhealthy")
    version: str
    services: Dict[str, str]
    timestamp: datetime


# ============================================
# Error Models
# ============================================

class ErrorResponse(BaseModel):
    """
    Standard error response.

    All API errors return this format with an error message,
    optional detail, and error code for programmatic handling.
    """
    error: str = Field(..., description="Error type/summary")
    detail: Optional[str] = Field(None, description="Detailed error message")
    code: Optional[str] = Field(None, description="Error code for programmatic handling")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": "Unauthorized",
                "detail": "Invalid code",
                "code": "UNAUTHORIZED"
            }
        }
    )
