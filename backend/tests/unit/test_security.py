"""Unit tests for password hashing and tokens."""

from datetime import timedelta
from types import SimpleNamespace

from worktrack.core.security import (
    create_access_token,
    create_user_token,
    decode_access_token,
    get_password_hash,
    verify_password,
)


class TestPasswords:
    def test_hash_and_verify(self):
        hashed = get_password_hash("secret123")
        assert hashed != "secret123"
        assert verify_password("secret123", hashed)
        assert not verify_password("wrong", hashed)

    def test_hashes_are_salted(self):
        assert get_password_hash("secret123") != get_password_hash("secret123")

    def test_unknown_hash_format(self):
        assert not verify_password("secret123", "plain-text")
        assert not verify_password("secret123", "$pbkdf2-sha256$broken")


class TestTokens:
    def test_user_token_claims(self):
        token = create_user_token(SimpleNamespace(id=3, username="alice", role="admin"))
        payload = decode_access_token(token)
        assert payload["sub"] == "3"
        assert payload["username"] == "alice"
        assert payload["role"] == "admin"

    def test_expired_token(self):
        token = create_access_token({"sub": "1"}, expires_delta=timedelta(seconds=-1))
        assert decode_access_token(token) is None

    def test_garbage_token(self):
        assert decode_access_token("not-a-token") is None
