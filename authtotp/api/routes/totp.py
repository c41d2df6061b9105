"""
TOTP Endpoints.

Provides enrollment, enrollment confirmation, login validation and
recovery code use. Every endpoint is rate limited per user identity before
any secret is decrypted or compared.

Domain errors raised here are turned into ErrorResponse bodies by the
handler registered in main.py.
"""
import logging

from fastapi import APIRouter, Depends, status
from fastapi.concurrency import run_in_threadpool

from ..models import (
    EnrollRequest,
    EnrollResponse,
    CodeRequest,
    StatusResponse,
    ErrorResponse,
)
from ..deps import get_service
from ...auth.service import TwoFactorService
from ...auth.totp import generate_qr_code_base64

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/totp", tags=["TOTP"])

RATE_LIMITED_RESPONSE = {429: {"model": ErrorResponse, "description": "Too many attempts"}}


@router.post(
    "/enroll",
    response_model=EnrollResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        409: {"model": ErrorResponse, "description": "TOTP already enabled"},
        **RATE_LIMITED_RESPONSE,
    },
)
async def enroll(
    request: EnrollRequest,
    service: TwoFactorService = Depends(get_service),
):
    """
    Start TOTP enrollment.

    Returns the secret, a provisioning URI with QR code, and recovery codes.
    TOTP is not active until confirmed with /totp/verify.
    """
    enrollment = await run_in_threadpool(service.enroll, request.user_id)
    qr_base64 = await run_in_threadpool(generate_qr_code_base64, enrollment.provisioning_uri)

    return EnrollResponse(
        user_id=request.user_id,
        secret=enrollment.secret_b32,
        provisioning_uri=enrollment.provisioning_uri,
        qr_code_base64=qr_base64,
        recovery_codes=enrollment.recovery_codes,
    )


@router.post(
    "/verify",
    response_model=StatusResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Malformed code"},
        401: {"model": ErrorResponse, "description": "Invalid code"},
        404: {"model": ErrorResponse, "description": "User not found"},
        409: {"model": ErrorResponse, "description": "TOTP already enabled"},
        **RATE_LIMITED_RESPONSE,
    },
)
async def verify_enrollment(
    request: CodeRequest,
    service: TwoFactorService = Depends(get_service),
):
    """
    Confirm enrollment with the first code from the authenticator app.
    """
    await run_in_threadpool(service.confirm, request.user_id, request.code)
    return StatusResponse(status="enabled", message="TOTP enabled")


@router.post(
    "/validate",
    response_model=StatusResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Malformed code"},
        401: {"model": ErrorResponse, "description": "Invalid code"},
        404: {"model": ErrorResponse, "description": "User not found"},
        412: {"model": ErrorResponse, "description": "TOTP not enabled"},
        **RATE_LIMITED_RESPONSE,
    },
)
async def validate(
    request: CodeRequest,
    service: TwoFactorService = Depends(get_service),
):
    """
    Check a TOTP code for an enrolled user (login flow).
    """
    await run_in_threadpool(service.validate, request.user_id, request.code)
    return StatusResponse(status="valid")


@router.post(
    "/recover",
    response_model=StatusResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid recovery code"},
        404: {"model": ErrorResponse, "description": "User not found"},
        412: {"model": ErrorResponse, "description": "TOTP not enabled"},
        **RATE_LIMITED_RESPONSE,
    },
)
async def recover(
    request: CodeRequest,
    service: TwoFactorService = Depends(get_service),
):
    """
    Authenticate with a one-time recovery code.

    The code is consumed and cannot be used again.
    """
    remaining = await run_in_threadpool(service.recover, request.user_id, request.code)
    return StatusResponse(
        status="recovered",
        message="Recovery code accepted",
        remaining_recovery_codes=remaining,
    )
