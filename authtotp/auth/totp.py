"""
TOTP code engine for AUTHTOTP.

Implements HOTP (RFC 4226) driving TOTP (RFC 6238) with HMAC-SHA1 via
pyotp, compatible with Google Authenticator, Authy, and other TOTP apps.

Also provides secret generation, base32 helpers, otpauth:// provisioning
URIs and QR codes for enrollment.
"""
import base64
import binascii
import io
import time
from typing import Optional
from urllib.parse import quote, urlencode

import pyotp
import qrcode

from .errors import EncodingError, InvalidSecretEncoding

DEFAULT_DIGITS = 6
DEFAULT_PERIOD = 30
SECRET_BYTES = 20  # 160-bit secret, RFC 4226 recommendation
ALGORITHM = "SHA1"

# pyotp rejects negative counters; steps below the epoch wrap as unsigned 64-bit
_COUNTER_MASK = 0xFFFFFFFFFFFFFFFF


class OTPGenerator:
    """
    Deterministic one-time code generator.

    Pure: no state besides its parameters, no I/O. Secrets are raw bytes,
    not base32 strings.
    """

    def __init__(self, digits: int = DEFAULT_DIGITS, period: int = DEFAULT_PERIOD):
        if digits < 1 or digits > 10:
            raise ValueError("digits must be between 1 and 10")
        if period < 1:
            raise ValueError("period must be a positive number of seconds")
        self.digits = digits
        self.period = period

    def hotp(self, secret: bytes, counter: int) -> str:
        """
        Generate an HOTP code.

        Args:
            secret: Raw key bytes.
            counter: Moving factor, interpreted as an unsigned 64-bit integer.

        Returns:
            Zero-padded decimal code of exactly `digits` characters.
        """
        hotp = pyotp.HOTP(encode_secret(secret), digits=self.digits)
        return hotp.at(counter & _COUNTER_MASK)

    def step(self, timestamp: float) -> int:
        """Time step counter for a unix timestamp."""
        return int(timestamp) // self.period

    def generate_code(self, secret: bytes, timestamp: float) -> str:
        """Generate the TOTP code valid at `timestamp`."""
        return self.hotp(secret, self.step(timestamp))

    def generate_code_from_base32(self, secret_b32: str, timestamp: float) -> str:
        """
        Generate a TOTP code from a base32-encoded secret.

        Raises:
            InvalidSecretEncoding: If the secret is not valid base32.
        """
        return self.generate_code(decode_secret(secret_b32), timestamp)

    def time_remaining(self, timestamp: float) -> int:
        """Seconds until the code for `timestamp` rolls over."""
        return self.period - (int(timestamp) % self.period)


def generate_secret() -> bytes:
    """
    Generate a new shared secret.

    Returns:
        SECRET_BYTES random bytes from the OS CSPRNG.

    Raises:
        EncodingError: If no randomness source is available.
    """
    try:
        secret_b32 = pyotp.random_base32(length=SECRET_BYTES * 8 // 5)
    except (OSError, NotImplementedError) as e:
        raise EncodingError(f"Failed to generate secret: {e}") from e
    return decode_secret(secret_b32)


def encode_secret(secret: bytes) -> str:
    """Encode raw secret bytes as unpadded upper-case base32."""
    return base64.b32encode(secret).decode("ascii").rstrip("=")


def decode_secret(secret_b32: str) -> bytes:
    """
    Decode a base32 secret (RFC 4648). Padding optional, case-insensitive.

    Raises:
        InvalidSecretEncoding: If the string is not valid base32.
    """
    cleaned = secret_b32.strip().replace(" ", "").rstrip("=")
    if not cleaned:
        raise InvalidSecretEncoding("Empty base32 secret")
    try:
        return pyotp.TOTP(cleaned).byte_secret()
    except (binascii.Error, ValueError) as e:
        raise InvalidSecretEncoding(f"Invalid base32 secret: {e}") from e


def build_provisioning_uri(
    secret_b32: str,
    account: str,
    issuer: str,
    digits: int = DEFAULT_DIGITS,
    period: int = DEFAULT_PERIOD,
) -> str:
    """
    Generate a provisioning URI for TOTP apps.

    This URI can be encoded as a QR code for easy scanning.

    Args:
        secret_b32: Base32-encoded TOTP secret.
        account: Account name (displayed in authenticator app).
        issuer: Application name (displayed in authenticator app).
        digits: Code length.
        period: Time step in seconds.

    Returns:
        otpauth://totp/<issuer>:<account>?secret=...&issuer=...
        &algorithm=SHA1&digits=6&period=30
    """
    label = quote(f"{issuer}:{account}", safe=":@")
    query = urlencode({
        "secret": secret_b32,
        "issuer": issuer,
        "algorithm": ALGORITHM,
        "digits": digits,
        "period": period,
    }, quote_via=quote)
    return f"otpauth://totp/{label}?{query}"


def generate_qr_code(uri: str) -> bytes:
    """
    Generate a QR code image for the provisioning URI.

    Args:
        uri: otpauth:// provisioning URI.

    Returns:
        PNG image bytes.
    """
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=10,
        border=4,
    )
    qr.add_data(uri)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer, format='PNG')
    buffer.seek(0)
    return buffer.read()


def generate_qr_code_base64(uri: str) -> str:
    """
    Generate a base64-encoded QR code for embedding in HTML.

    Returns:
        Base64-encoded PNG image string (data URI ready).
    """
    png_bytes = generate_qr_code(uri)
    b64 = base64.b64encode(png_bytes).decode('utf-8')
    return f"data:image/png;base64,{b64}"


def current_code(secret_b32: str, timestamp: Optional[float] = None,
                 generator: Optional[OTPGenerator] = None) -> str:
    """
    Get the current TOTP code for a base32 secret (for testing/debugging).
    """
    generator = generator or OTPGenerator()
    if timestamp is None:
        timestamp = time.time()
    return generator.generate_code_from_base32(secret_b32, timestamp)
