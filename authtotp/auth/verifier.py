"""
TOTP window verification.

Checks a candidate code against every time step in the drift window
[current - W, current + W] with constant-time comparison.
"""
import hmac
import time
from typing import Optional, Protocol

from .totp import OTPGenerator

# Windows wider than this defeat the purpose of time-boxed codes
MAX_WINDOW = 10


class Clock(Protocol):
    """Time source returning unix seconds."""

    def now(self) -> float:
        ...


class SystemClock:
    """Clock backed by the system time."""

    def now(self) -> float:
        return time.time()


class FixedClock:
    """
    Clock frozen at a given timestamp.

    Used for deterministic tests and for tooling that computes codes at
    an arbitrary time.
    """

    def __init__(self, timestamp: float):
        self.timestamp = timestamp

    def now(self) -> float:
        return self.timestamp

    def advance(self, seconds: float) -> None:
        self.timestamp += seconds


class WindowVerifier:
    """
    Validates TOTP codes with clock drift tolerance.

    Example usage:
        verifier = WindowVerifier(OTPGenerator(), window=1)
        verifier.verify(secret_bytes, "123456")
    """

    def __init__(
        self,
        generator: Optional[OTPGenerator] = None,
        clock: Optional[Clock] = None,
        window: int = 1,
    ):
        """
        Args:
            generator: Code engine. Defaults to 6 digits / 30 seconds.
            clock: Time source. Defaults to SystemClock.
            window: Steps accepted before and after the current one.
        """
        if window < 0 or window > MAX_WINDOW:
            raise ValueError(f"window must be between 0 and {MAX_WINDOW}, got {window}")
        self.generator = generator or OTPGenerator()
        self.clock = clock or SystemClock()
        self.window = window

    @property
    def digits(self) -> int:
        return self.generator.digits

    def verify(self, secret: bytes, candidate: str) -> bool:
        """
        Check a code against the current time step and +/- window steps.

        Every step in the window is generated and compared even after a
        match, so timing does not depend on the position of a match.

        Args:
            secret: Raw secret bytes.
            candidate: Code entered by the user.

        Returns:
            True if any step in the window matched.
        """
        # Length is public, no need to hide it
        if len(candidate) != self.generator.digits:
            return False

        candidate_bytes = candidate.encode("utf-8")
        current_step = self.generator.step(self.clock.now())

        matched = False
        for step in range(current_step - self.window, current_step + self.window + 1):
            expected = self.generator.hotp(secret, step)
            matched |= hmac.compare_digest(expected.encode("ascii"), candidate_bytes)

        return matched
