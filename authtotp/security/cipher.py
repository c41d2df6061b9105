"""
At-rest encryption for TOTP shared secrets.

Secrets are encrypted with AES-256-GCM before storage and decrypted for
every verification. The stored blob is self-describing:

    base64( nonce[12] || ciphertext || tag[16] )

Security Model:
- Master key stored as environment variable or mounted secret file
- Protects against database breach (attacker sees only encrypted blobs)
- A fresh random nonce per encryption; nonce reuse under GCM breaks both
  confidentiality and integrity
- Decryption fails closed: tampered, truncated or malformed blobs raise
  DecryptionFailed and never yield plaintext
"""
import base64
import binascii
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..auth.errors import DecryptionFailed, EncodingError, InvalidKeyLength

logger = logging.getLogger(__name__)

KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16


def generate_master_key() -> bytes:
    """Generate a random 32-byte master key."""
    return AESGCM.generate_key(bit_length=KEY_SIZE * 8)


class SecretCipher:
    """
    Encrypts and decrypts shared secrets with a master key.

    Example usage:
        cipher = SecretCipher(bytes.fromhex(master_key_hex))
        blob = cipher.encrypt(secret_bytes)
        secret_bytes = cipher.decrypt(blob)
    """

    def __init__(self, master_key: bytes):
        """
        Args:
            master_key: Raw 32-byte AES-256 key.

        Raises:
            InvalidKeyLength: If the key is not exactly 32 bytes.
        """
        if len(master_key) != KEY_SIZE:
            raise InvalidKeyLength(f"Master key must be {KEY_SIZE} bytes, got {len(master_key)}")
        self._aesgcm = AESGCM(master_key)

    def encrypt(self, plaintext: bytes) -> str:
        """
        Encrypt raw secret bytes.

        Returns:
            Base64 blob containing nonce and sealed ciphertext.
        """
        try:
            nonce = os.urandom(NONCE_SIZE)
        except NotImplementedError as e:
            raise EncodingError(f"No randomness source for nonce: {e}") from e

        sealed = self._aesgcm.encrypt(nonce, plaintext, None)
        return base64.b64encode(nonce + sealed).decode("ascii")

    def decrypt(self, blob: str) -> bytes:
        """
        Decrypt a blob produced by encrypt().

        Raises:
            DecryptionFailed: On malformed base64, truncated input or a tag
                that does not verify.
        """
        try:
            raw = base64.b64decode(blob, validate=True)
        except (binascii.Error, ValueError, TypeError) as e:
            raise DecryptionFailed("Encrypted secret is not valid base64") from e

        # Reject non-canonical encodings so every character of the blob is significant
        if base64.b64encode(raw).decode("ascii") != blob:
            raise DecryptionFailed("Encrypted secret is not canonically encoded")

        if len(raw) < NONCE_SIZE + TAG_SIZE:
            raise DecryptionFailed("Encrypted secret too short")

        nonce, sealed = raw[:NONCE_SIZE], raw[NONCE_SIZE:]
        try:
            return self._aesgcm.decrypt(nonce, sealed, None)
        except InvalidTag as e:
            logger.error("Secret decryption failed: authentication tag mismatch")
            raise DecryptionFailed("Encrypted secret failed authentication") from e
