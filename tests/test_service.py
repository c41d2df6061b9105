"""
Tests for the two-factor orchestration service.

Covers:
- Enrollment, confirmation and login validation
- Recovery code consumption
- Rate limiting ahead of every lookup
- Error taxonomy for each failure path
"""
import threading

import pytest

from authtotp.auth.errors import (
    AlreadyEnabled,
    DecryptionFailed,
    InvalidInput,
    NotEnabled,
    RateLimited,
    Unauthorized,
    UserNotFound,
)
from authtotp.auth.totp import OTPGenerator, decode_secret

T = 1234567890


def code_for(enrollment, timestamp=T):
    return OTPGenerator().generate_code_from_base32(enrollment.secret_b32, timestamp)


def wrong_code_for(enrollment):
    valid = {code_for(enrollment, T + offset) for offset in (-30, 0, 30)}
    return next(c for c in ("000000", "111111", "222222", "333333") if c not in valid)


@pytest.fixture
def enabled_user(service, monotonic):
    """alice with TOTP enabled and a full rate limit bucket."""
    enrollment = service.enroll("alice")
    service.confirm("alice", code_for(enrollment))
    monotonic.advance(90)
    return enrollment


# ============================================
# Enrollment Tests
# ============================================

class TestEnroll:

    def test_enroll_stores_disabled_record(self, service, repository, cipher):
        enrollment = service.enroll("alice")

        record = repository.get_user("alice")
        assert record.enabled is False
        assert record.encrypted_secret == enrollment.encrypted_secret
        assert record.recovery_codes == enrollment.hashed_codes
        assert cipher.decrypt(record.encrypted_secret) == decode_secret(enrollment.secret_b32)

    def test_enroll_never_stores_plaintext(self, service, repository):
        enrollment = service.enroll("alice")
        record = repository.get_user("alice")

        assert enrollment.secret_b32 not in record.encrypted_secret
        for code in enrollment.recovery_codes:
            assert code not in record.recovery_codes

    def test_enroll_returns_uri_and_codes(self, service):
        enrollment = service.enroll("alice")

        assert enrollment.provisioning_uri.startswith("otpauth://totp/AuthTOTP:alice?")
        assert f"secret={enrollment.secret_b32}" in enrollment.provisioning_uri
        assert len(enrollment.recovery_codes) == 8

    def test_reenroll_while_pending_replaces_secret(self, service, repository, monotonic):
        first = service.enroll("alice")
        second = service.enroll("alice")
        monotonic.advance(90)

        assert first.secret_b32 != second.secret_b32
        assert repository.get_user("alice").encrypted_secret == second.encrypted_secret

        # Codes from the abandoned enrollment no longer work
        with pytest.raises(Unauthorized):
            service.confirm("alice", code_for(first))
        service.confirm("alice", code_for(second))

    def test_enroll_after_enabled_rejected(self, service, enabled_user):
        with pytest.raises(AlreadyEnabled):
            service.enroll("alice")


# ============================================
# Confirmation Tests
# ============================================

class TestConfirm:

    def test_confirm_enables(self, service, repository):
        enrollment = service.enroll("alice")
        service.confirm("alice", code_for(enrollment))
        assert repository.get_user("alice").enabled is True

    def test_confirm_accepts_adjacent_step(self, service, repository):
        enrollment = service.enroll("alice")
        service.confirm("alice", code_for(enrollment, T - 30))
        assert repository.get_user("alice").enabled is True

    def test_confirm_wrong_code(self, service, repository):
        enrollment = service.enroll("alice")
        with pytest.raises(Unauthorized):
            service.confirm("alice", wrong_code_for(enrollment))
        assert repository.get_user("alice").enabled is False

    def test_confirm_expired_code(self, service):
        enrollment = service.enroll("alice")
        with pytest.raises(Unauthorized):
            service.confirm("alice", code_for(enrollment, T - 60))

    def test_confirm_unknown_user(self, service):
        with pytest.raises(UserNotFound):
            service.confirm("ghost", "123456")

    def test_confirm_twice(self, service, enabled_user):
        with pytest.raises(AlreadyEnabled):
            service.confirm("alice", code_for(enabled_user))

    @pytest.mark.parametrize("code", ["12345", "1234567", ""])
    def test_confirm_wrong_length(self, service, code):
        service.enroll("alice")
        with pytest.raises(InvalidInput):
            service.confirm("alice", code)


# ============================================
# Validation Tests
# ============================================

class TestValidate:

    def test_validate_current_code(self, service, enabled_user):
        service.validate("alice", code_for(enabled_user))

    def test_validate_wrong_code(self, service, enabled_user):
        with pytest.raises(Unauthorized):
            service.validate("alice", wrong_code_for(enabled_user))

    def test_validate_before_confirm(self, service):
        enrollment = service.enroll("alice")
        with pytest.raises(NotEnabled):
            service.validate("alice", code_for(enrollment))

    def test_validate_unknown_user(self, service):
        with pytest.raises(UserNotFound):
            service.validate("ghost", "123456")

    def test_validate_does_not_change_record(self, service, repository, enabled_user):
        before = repository.get_user("alice")
        service.validate("alice", code_for(enabled_user))
        assert repository.get_user("alice") == before

    def test_tampered_secret_fails_closed(self, service, repository, enabled_user):
        record = repository.get_user("alice")
        first = "B" if record.encrypted_secret[0] == "A" else "A"
        record.encrypted_secret = first + record.encrypted_secret[1:]
        repository.save_user(record)

        with pytest.raises(DecryptionFailed):
            service.validate("alice", code_for(enabled_user))


# ============================================
# Rate Limiting Tests
# ============================================

class TestRateLimiting:

    def test_fourth_attempt_limited(self, service, enabled_user):
        bad = wrong_code_for(enabled_user)
        for _ in range(3):
            with pytest.raises(Unauthorized):
                service.validate("alice", bad)

        # Even the correct code is refused while limited
        with pytest.raises(RateLimited) as exc_info:
            service.validate("alice", code_for(enabled_user))
        assert exc_info.value.retry_after == 30

    def test_limit_recovers_after_refill(self, service, monotonic, enabled_user):
        bad = wrong_code_for(enabled_user)
        for _ in range(3):
            with pytest.raises(Unauthorized):
                service.validate("alice", bad)

        monotonic.advance(30)
        service.validate("alice", code_for(enabled_user))

    def test_unknown_identity_limited_too(self, service):
        for _ in range(3):
            with pytest.raises(UserNotFound):
                service.validate("ghost", "123456")
        with pytest.raises(RateLimited):
            service.validate("ghost", "123456")

    def test_limit_checked_before_length(self, service, enabled_user):
        for _ in range(3):
            with pytest.raises(InvalidInput):
                service.validate("alice", "1")
        with pytest.raises(RateLimited):
            service.validate("alice", "1")

    def test_limit_shared_across_operations(self, service, enabled_user):
        with pytest.raises(Unauthorized):
            service.validate("alice", wrong_code_for(enabled_user))
        with pytest.raises(Unauthorized):
            service.recover("alice", "NOTACODE22")
        with pytest.raises(Unauthorized):
            service.validate("alice", wrong_code_for(enabled_user))
        with pytest.raises(RateLimited):
            service.recover("alice", enabled_user.recovery_codes[0])

    def test_other_users_unaffected(self, service, enabled_user):
        for _ in range(3):
            with pytest.raises(Unauthorized):
                service.validate("alice", wrong_code_for(enabled_user))

        bob = service.enroll("bob")
        service.confirm("bob", code_for(bob))


# ============================================
# Recovery Tests
# ============================================

class TestRecover:

    def test_recover_consumes_code(self, service, repository, enabled_user):
        remaining = service.recover("alice", enabled_user.recovery_codes[0])

        assert remaining == 7
        assert len(repository.get_user("alice").recovery_codes) == 7

    def test_recovery_code_single_use(self, service, enabled_user):
        code = enabled_user.recovery_codes[0]
        service.recover("alice", code)
        with pytest.raises(Unauthorized):
            service.recover("alice", code)

    def test_other_codes_survive(self, service, monotonic, enabled_user):
        service.recover("alice", enabled_user.recovery_codes[0])
        for code in enabled_user.recovery_codes[1:]:
            monotonic.advance(30)
            service.recover("alice", code)

        monotonic.advance(30)
        with pytest.raises(Unauthorized):
            service.recover("alice", enabled_user.recovery_codes[-1])

    def test_recover_formatted_code(self, service, enabled_user):
        code = enabled_user.recovery_codes[2]
        assert service.recover("alice", f"{code[:5]}-{code[5:]}".lower()) == 7

    def test_recover_invalid_code(self, service, repository, enabled_user):
        with pytest.raises(Unauthorized):
            service.recover("alice", "NOTACODE22")
        assert len(repository.get_user("alice").recovery_codes) == 8

    @pytest.mark.parametrize("code", ["", "   "])
    def test_recover_empty_code(self, service, enabled_user, code):
        with pytest.raises(InvalidInput):
            service.recover("alice", code)

    def test_recover_before_confirm(self, service):
        enrollment = service.enroll("alice")
        with pytest.raises(NotEnabled):
            service.recover("alice", enrollment.recovery_codes[0])

    def test_recover_unknown_user(self, service):
        with pytest.raises(UserNotFound):
            service.recover("ghost", "ABCDEFGHJK")

    def test_concurrent_recovery_single_winner(self, service, enabled_user):
        code = enabled_user.recovery_codes[0]
        outcomes = []
        outcomes_lock = threading.Lock()
        start = threading.Event()

        def attempt():
            start.wait()
            try:
                service.recover("alice", code)
                result = "ok"
            except Unauthorized:
                result = "rejected"
            with outcomes_lock:
                outcomes.append(result)

        threads = [threading.Thread(target=attempt) for _ in range(2)]
        for t in threads:
            t.start()
        start.set()
        for t in threads:
            t.join()

        assert sorted(outcomes) == ["ok", "rejected"]
