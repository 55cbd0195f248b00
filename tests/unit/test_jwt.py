"""Unit tests for bearer token verification."""

import uuid
from datetime import timedelta

from jose import jwt

from rolekeeper.kernel.identity.jwt import JWTManager


SECRET = "test-secret-key-for-testing-only-0123456789"


def _manager(**overrides) -> JWTManager:
    options = {
        "secret_key": SECRET,
        "algorithm": "HS256",
        "issuer": "test-idp",
        "access_token_expire_minutes": 30,
    }
    options.update(overrides)
    return JWTManager(**options)


class TestJWTManager:
    """Tests for JWTManager."""

    def test_round_trip(self):
        manager = _manager()
        principal_id = uuid.uuid4()
        token, expires, jti = manager.create_access_token(principal_id)

        payload = manager.verify_access_token(token)
        assert payload is not None
        assert payload.principal_id == principal_id
        assert payload.jti == jti
        assert payload.iss == "test-idp"
        assert payload.exp == expires.replace(microsecond=0)

    def test_expired_token_rejected(self):
        manager = _manager()
        token, _, _ = manager.create_access_token(uuid.uuid4(), expires_delta=timedelta(seconds=-5))
        assert manager.verify_access_token(token) is None

    def test_wrong_secret_rejected(self):
        token, _, _ = _manager().create_access_token(uuid.uuid4())
        other = _manager(secret_key="another-secret-key-for-testing-0123456789")
        assert other.verify_access_token(token) is None

    def test_wrong_issuer_rejected(self):
        token, _, _ = _manager(issuer="someone-else").create_access_token(uuid.uuid4())
        assert _manager().verify_access_token(token) is None

    def test_non_access_token_rejected(self):
        token = jwt.encode(
            {"sub": str(uuid.uuid4()), "type": "refresh", "iss": "test-idp", "jti": "x", "iat": 0, "exp": 9999999999},
            SECRET,
            algorithm="HS256",
        )
        assert _manager().verify_access_token(token) is None

    def test_subject_must_be_uuid(self):
        token = jwt.encode(
            {"sub": "not-a-uuid", "type": "access", "iss": "test-idp", "jti": "x", "iat": 0, "exp": 9999999999},
            SECRET,
            algorithm="HS256",
        )
        assert _manager().verify_access_token(token) is None

    def test_garbage_rejected(self):
        assert _manager().verify_access_token("not.a.token") is None
