"""
Recovery code generation and single-use consumption.

Recovery codes are the fallback when the authenticator device is lost.
A batch of CODE_COUNT codes is generated at enrollment; only their SHA-256
hashes are stored and each code can be consumed once.

A fast hash is acceptable here: the codes are high-entropy one-time values
(10 characters from a 32-symbol alphabet, ~50 bits), not passwords.
"""
import hashlib
import secrets
from typing import List, Sequence, Tuple

from .errors import EncodingError

CODE_COUNT = 8
CODE_LENGTH = 10
# Upper-case alphanumerics without the confusable I, O, 0 and 1
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


def normalize_code(code: str) -> str:
    """Remove spaces and dashes and convert to uppercase."""
    return code.replace("-", "").replace(" ", "").strip().upper()


def hash_code(code: str) -> str:
    """
    Hash a recovery code for storage.

    Args:
        code: Plain text recovery code (normalized before hashing).

    Returns:
        Lowercase hex SHA-256 digest.
    """
    return hashlib.sha256(normalize_code(code).encode("utf-8")).hexdigest()


class RecoveryCodeManager:
    """
    Generates recovery code batches and validates presented codes.

    Stateless: stored hashes are passed in and the reduced set is returned
    to the caller, which decides when to persist it.
    """

    def __init__(self, count: int = CODE_COUNT, length: int = CODE_LENGTH,
                 alphabet: str = CODE_ALPHABET):
        self.count = count
        self.length = length
        self.alphabet = alphabet

    def _random_code(self) -> str:
        # secrets.choice draws via randbelow, no modulo bias
        try:
            return "".join(secrets.choice(self.alphabet) for _ in range(self.length))
        except (OSError, NotImplementedError) as e:
            raise EncodingError(f"Failed to generate recovery code: {e}") from e

    def generate(self) -> Tuple[List[str], List[str]]:
        """
        Generate a batch of recovery codes.

        Returns:
            Tuple of (plaintext_codes, hashed_codes). The plaintext codes are
            shown to the user once and never stored.
        """
        plain_codes = [self._random_code() for _ in range(self.count)]
        hashed_codes = [hash_code(code) for code in plain_codes]
        return plain_codes, hashed_codes

    def validate_and_consume(
        self,
        candidate: str,
        stored_hashes: Sequence[str],
    ) -> Tuple[List[str], bool]:
        """
        Check a recovery code and remove it from the set if it matches.

        The hash comparison is a plain equality check. Codes are single-use,
        high-entropy and sit behind the rate limiter, and the set holds at
        most CODE_COUNT entries, so a timing signal is not exploitable.

        Args:
            candidate: Code presented by the user.
            stored_hashes: Currently stored hashes. Never mutated.

        Returns:
            Tuple of (new_hashes, matched). new_hashes is a new list with the
            matched entry removed, or a copy of the input if nothing matched.
        """
        candidate_hash = hash_code(candidate)
        remaining = list(stored_hashes)

        for i, stored in enumerate(remaining):
            if stored == candidate_hash:
                del remaining[i]
                return remaining, True

        return remaining, False
