"""
Tests for drift-window verification.
"""
from unittest.mock import patch

import pytest

from authtotp.auth.totp import OTPGenerator
from authtotp.auth.verifier import MAX_WINDOW, FixedClock, SystemClock, WindowVerifier

T = 1234567890


def code_at(secret, timestamp):
    return OTPGenerator().generate_code(secret, timestamp)


def code_outside_window(secret, window):
    in_window = {code_at(secret, T + 30 * offset) for offset in range(-window, window + 1)}
    return next(c for c in ("000000", "111111", "222222", "333333", "444444") if c not in in_window)


class TestWindow:

    def test_current_code_accepted(self, rfc_secret, fixed_clock):
        verifier = WindowVerifier(clock=fixed_clock, window=1)
        assert verifier.verify(rfc_secret, "005924")

    def test_adjacent_steps_accepted(self, rfc_secret, fixed_clock):
        verifier = WindowVerifier(clock=fixed_clock, window=1)
        assert verifier.verify(rfc_secret, code_at(rfc_secret, T - 30))
        assert verifier.verify(rfc_secret, code_at(rfc_secret, T + 30))

    def test_outside_window_rejected(self, rfc_secret, fixed_clock):
        verifier = WindowVerifier(clock=fixed_clock, window=1)
        assert not verifier.verify(rfc_secret, code_at(rfc_secret, T - 60))
        assert not verifier.verify(rfc_secret, code_at(rfc_secret, T + 60))

    def test_zero_window_only_current_step(self, rfc_secret, fixed_clock):
        verifier = WindowVerifier(clock=fixed_clock, window=0)
        assert verifier.verify(rfc_secret, "005924")
        assert not verifier.verify(rfc_secret, code_at(rfc_secret, T - 30))

    def test_wider_window(self, rfc_secret, fixed_clock):
        verifier = WindowVerifier(clock=fixed_clock, window=2)
        assert verifier.verify(rfc_secret, code_at(rfc_secret, T - 60))
        assert not verifier.verify(rfc_secret, code_at(rfc_secret, T - 90))

    def test_clock_advance_expires_code(self, rfc_secret):
        clock = FixedClock(T)
        verifier = WindowVerifier(clock=clock, window=1)
        code = code_at(rfc_secret, T)

        clock.advance(30)
        assert verifier.verify(rfc_secret, code)
        clock.advance(30)
        assert not verifier.verify(rfc_secret, code)

    def test_wrong_secret_rejected(self, fixed_clock):
        verifier = WindowVerifier(clock=fixed_clock, window=1)
        assert not verifier.verify(b"another secret value!", "005924")

    def test_system_clock_accepts_current_code(self, rfc_secret):
        verifier = WindowVerifier(clock=SystemClock(), window=1)
        code = OTPGenerator().generate_code(rfc_secret, SystemClock().now())
        assert verifier.verify(rfc_secret, code)


class TestConstantWork:
    """Every verification generates the whole window."""

    @pytest.mark.parametrize("window", [0, 1, 3])
    def test_all_steps_generated_on_match(self, rfc_secret, fixed_clock, window):
        generator = OTPGenerator()
        verifier = WindowVerifier(generator, clock=fixed_clock, window=window)
        # Match on the earliest step so an early exit would show
        code = code_at(rfc_secret, T - 30 * window)

        with patch.object(generator, "hotp", wraps=generator.hotp) as spy:
            assert verifier.verify(rfc_secret, code)

        assert spy.call_count == 2 * window + 1

    @pytest.mark.parametrize("window", [0, 1, 3])
    def test_all_steps_generated_on_miss(self, rfc_secret, fixed_clock, window):
        generator = OTPGenerator()
        verifier = WindowVerifier(generator, clock=fixed_clock, window=window)

        with patch.object(generator, "hotp", wraps=generator.hotp) as spy:
            assert not verifier.verify(rfc_secret, code_outside_window(rfc_secret, window))

        assert spy.call_count == 2 * window + 1

    def test_steps_cover_window_in_order(self, rfc_secret, fixed_clock):
        generator = OTPGenerator()
        verifier = WindowVerifier(generator, clock=fixed_clock, window=1)
        current = T // 30

        with patch.object(generator, "hotp", wraps=generator.hotp) as spy:
            verifier.verify(rfc_secret, "005924")

        steps = [call.args[1] for call in spy.call_args_list]
        assert steps == [current - 1, current, current + 1]

    def test_window_at_epoch_still_full(self, rfc_secret):
        generator = OTPGenerator()
        verifier = WindowVerifier(generator, clock=FixedClock(0), window=2)

        code = generator.hotp(rfc_secret, 0)

        with patch.object(generator, "hotp", wraps=generator.hotp) as spy:
            assert verifier.verify(rfc_secret, code)

        assert spy.call_count == 5

    @pytest.mark.parametrize("candidate", ["", "12345", "1234567", "00592"])
    def test_wrong_length_rejected_without_generation(self, rfc_secret, fixed_clock, candidate):
        generator = OTPGenerator()
        verifier = WindowVerifier(generator, clock=fixed_clock, window=1)

        with patch.object(generator, "hotp", wraps=generator.hotp) as spy:
            assert not verifier.verify(rfc_secret, candidate)

        spy.assert_not_called()


class TestConfiguration:

    def test_defaults(self):
        verifier = WindowVerifier()
        assert verifier.window == 1
        assert verifier.digits == 6
        assert isinstance(verifier.clock, SystemClock)

    @pytest.mark.parametrize("window", [-1, MAX_WINDOW + 1])
    def test_window_bounds(self, window):
        with pytest.raises(ValueError):
            WindowVerifier(window=window)

    def test_max_window_allowed(self):
        assert WindowVerifier(window=MAX_WINDOW).window == MAX_WINDOW
