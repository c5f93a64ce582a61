"""
NoteKeeper Backend — Token Service Tests
==========================================

What we test:
    ✅ Issued tokens verify back to the same user id
    ✅ Expired, foreign-key, garbage and bad-subject tokens are rejected
    ✅ A missing signing key refuses to construct
"""

from datetime import timedelta

import pytest
from jose import jwt

from notekeeper.database import utcnow
from notekeeper.exceptions import ConfigurationError, UnauthorizedError
from notekeeper.services.token_service import TokenService


class TestTokenRoundTrip:
    def setup_method(self):
        self.service = TokenService("unit-test-key", ttl=timedelta(hours=24))

    def test_verify_returns_user_id(self):
        token = self.service.issue(42)
        assert self.service.verify(token) == 42

    def test_claims_carry_string_subject_and_24h_expiry(self):
        now = utcnow()
        token = self.service.issue(7, now=now)
        claims = jwt.get_unverified_claims(token)
        assert claims["sub"] == "7"
        assert claims["exp"] - claims["iat"] == 24 * 3600


class TestTokenRejection:
    def setup_method(self):
        self.service = TokenService("unit-test-key")

    def test_expired_token(self):
        token = self.service.issue(1, now=utcnow() - timedelta(hours=25))
        with pytest.raises(UnauthorizedError) as exc_info:
            self.service.verify(token)
        assert exc_info.value.context["reason"] == "expired"

    def test_token_signed_with_another_key(self):
        other = TokenService("some-other-key")
        with pytest.raises(UnauthorizedError):
            self.service.verify(other.issue(1))

    @pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b.c"])
    def test_malformed_token(self, token):
        with pytest.raises(UnauthorizedError):
            self.service.verify(token)

    def test_non_integer_subject(self):
        exp = int((utcnow() + timedelta(hours=1)).timestamp())
        token = jwt.encode({"sub": "alice", "exp": exp}, "unit-test-key", algorithm="HS256")
        with pytest.raises(UnauthorizedError) as exc_info:
            self.service.verify(token)
        assert exc_info.value.context["reason"] == "bad_subject"

    def test_token_without_expiry(self):
        token = jwt.encode({"sub": "1"}, "unit-test-key", algorithm="HS256")
        with pytest.raises(UnauthorizedError):
            self.service.verify(token)

    def test_same_message_for_every_failure(self):
        expired = self.service.issue(1, now=utcnow() - timedelta(days=2))
        messages = set()
        for token in (expired, "garbage", TokenService("x").issue(1)):
            with pytest.raises(UnauthorizedError) as exc_info:
                self.service.verify(token)
            messages.add(exc_info.value.message)
        assert len(messages) == 1


class TestTokenConfiguration:
    @pytest.mark.parametrize("key", ["", "   "])
    def test_empty_key_is_a_configuration_error(self, key):
        with pytest.raises(ConfigurationError):
            TokenService(key)
