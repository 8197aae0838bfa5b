"""Password hashing and JWT round-trips."""
from datetime import timedelta

from app.core.security import (
    ACCESS,
    REFRESH,
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    token_ttl_seconds,
    verify_password,
)


class TestPasswords:
    def test_hash_verifies(self):
        hashed = hash_password("Sup3r-Secret-Pass!")
        assert hashed != "Sup3r-Secret-Pass!"
        assert verify_password("Sup3r-Secret-Pass!", hashed)

    def test_wrong_password(self):
        assert not verify_password("nope", hash_password("Sup3r-Secret-Pass!"))


class TestTokens:
    def test_access_token_round_trip(self):
        data = decode_token(create_access_token({"sub": "abc"}))
        assert data["sub"] == "abc"
        assert data["type"] == "access"
        assert "jti" not in data

    def test_refresh_token_has_unique_jti(self):
        first = decode_token(create_refresh_token({"sub": "abc"}))
        second = decode_token(create_refresh_token({"sub": "abc"}))
        assert first["type"] == "refresh"
        assert first["jti"] != second["jti"]

    def test_expired_token_rejected(self):
        token = create_access_token({"sub": "abc"}, expires_delta=timedelta(seconds=-1))
        assert decode_token(token) is None

    def test_tampered_token_rejected(self):
        token = create_access_token({"sub": "abc"})
        assert decode_token(token[:-2] + "xx") is None

    def test_ttl(self):
        data = decode_token(create_access_token({"sub": "abc"}, expires_delta=timedelta(minutes=5)))
        assert 290 <= token_ttl_seconds(data) <= 300
        assert token_ttl_seconds({}) == 0

    def test_expected_type_enforced(self):
        refresh = create_refresh_token({"sub": "abc"})
        assert decode_token(refresh, ACCESS) is None
        assert decode_token(refresh, REFRESH)["sub"] == "abc"
