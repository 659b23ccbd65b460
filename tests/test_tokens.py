# tests/test_tokens.py — Token issuing, validation, rotation and revocation
from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from todolist.errors import TokenError
from todolist.tokens import RevocationStore, TokenService, TokenType

SECRET = "unit-test-signing-key-0123456789abcdef"


@pytest.fixture
def service():
    return TokenService(SECRET, timedelta(minutes=15), timedelta(days=7))


class TestConstruction:
    @pytest.mark.parametrize("kwargs", [
        {"secret_key": ""},
        {"access_ttl": timedelta(0)},
        {"refresh_ttl": timedelta(seconds=-1)},
        {"algorithm": "RS256"},
    ])
    def test_rejects_bad_settings(self, kwargs):
        settings = {"secret_key": SECRET, "access_ttl": timedelta(minutes=1), "refresh_ttl": timedelta(days=1)}
        settings.update(kwargs)
        with pytest.raises(ValueError):
            TokenService(**settings)


class TestGenerate:
    def test_pair_has_distinct_ids_and_types(self, service):
        tokens = service.generate_tokens("todolist", 1001, {"role": "user"})
        assert tokens.access.token_id != tokens.refresh.token_id
        assert tokens.access.token_type == TokenType.ACCESS
        assert tokens.refresh.token_type == TokenType.REFRESH
        assert tokens.refresh_expires_at - tokens.access_expires_at == timedelta(days=7) - timedelta(minutes=15)

    def test_claims(self, service):
        tokens = service.generate_tokens("todolist", 1001, {"role": "admin"})
        result = service.validate_access_token(tokens.access_token)
        assert result.user_id == 1001
        assert result.issuer == "todolist"
        assert result.custom == {"role": "admin"}
        assert result.claims["sub"] == "1001"

    def test_requires_user(self, service):
        with pytest.raises(TokenError) as exc:
            service.generate_tokens("todolist", 0)
        assert exc.value.code == "TOKEN_GENERATION_ERROR"


class TestValidate:
    def test_type_mismatch(self, service):
        tokens = service.generate_tokens("todolist", 1)
        with pytest.raises(TokenError) as exc:
            service.validate_access_token(tokens.refresh_token)
        assert exc.value.code == "INVALID_TOKEN_TYPE"
        with pytest.raises(TokenError) as exc:
            service.validate_refresh_token(tokens.access_token)
        assert exc.value.code == "INVALID_TOKEN_TYPE"

    @pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b.c"])
    def test_garbage(self, service, token):
        with pytest.raises(TokenError) as exc:
            service.validate_token(token)
        assert exc.value.code == "INVALID_TOKEN"

    def test_wrong_signature(self, service):
        other = TokenService("another-signing-key-abcdefghijklmnop", timedelta(minutes=15), timedelta(days=7))
        tokens = other.generate_tokens("todolist", 1)
        with pytest.raises(TokenError) as exc:
            service.validate_token(tokens.access_token)
        assert exc.value.code == "INVALID_TOKEN"

    def test_unsigned_token_is_rejected(self, service):
        # {"alg": "none", "typ": "JWT"} . {"user_id": 1} . <no signature>
        token = "eyJhbGciOiJub25lIiwidHlwIjoiSldUIn0.eyJ1c2VyX2lkIjoxfQ."
        with pytest.raises(TokenError) as exc:
            service.validate_token(token)
        assert exc.value.code == "INVALID_TOKEN"

    def test_expired(self, service):
        now = datetime.now(timezone.utc)
        claims = {
            "user_id": 1, "token_id": "abc", "token_type": "access",
            "iat": now - timedelta(hours=2), "nbf": now - timedelta(hours=2), "exp": now - timedelta(hours=1),
        }
        token = jwt.encode(claims, SECRET, algorithm="HS256")
        with pytest.raises(TokenError) as exc:
            service.validate_token(token)
        assert exc.value.code == "EXPIRED_TOKEN"
        assert service.get_token_info(token).is_expired()

    def test_missing_claims(self, service):
        now = datetime.now(timezone.utc)
        token = jwt.encode({"iat": now, "exp": now + timedelta(minutes=5)}, SECRET, algorithm="HS256")
        with pytest.raises(TokenError) as exc:
            service.validate_token(token)
        assert exc.value.code == "INVALID_TOKEN"

    def test_token_info(self, service):
        tokens = service.generate_tokens("todolist", 1)
        info = service.get_token_info(tokens.access_token)
        assert info.token_id == tokens.access.token_id
        assert not info.is_expired()
        assert timedelta(minutes=14) < info.time_until_expiry() <= timedelta(minutes=15)


class TestRotationAndRevocation:
    def test_refresh_rotation(self, service):
        first = service.generate_tokens("todolist", 1001)
        second = service.refresh_tokens(first.refresh_token)

        ids = {first.access.token_id, first.refresh.token_id, second.access.token_id, second.refresh.token_id}
        assert len(ids) == 4
        assert service.validate_access_token(second.access_token).user_id == 1001
        # the presented refresh token is not revoked by default
        assert service.validate_access_token(first.access_token).user_id == 1001
        assert service.validate_refresh_token(first.refresh_token).user_id == 1001

    def test_refresh_keeps_custom_claims(self, service):
        first = service.generate_tokens("todolist", 1001, {"role": "admin"})
        second = service.refresh_tokens(first.refresh_token)
        assert service.validate_access_token(second.access_token).custom == {"role": "admin"}

    def test_refresh_with_access_token(self, service):
        tokens = service.generate_tokens("todolist", 1)
        with pytest.raises(TokenError) as exc:
            service.refresh_tokens(tokens.access_token)
        assert exc.value.code == "INVALID_TOKEN_TYPE"

    def test_revoke_on_rotation(self):
        service = TokenService(SECRET, timedelta(minutes=15), timedelta(days=7), revoke_refresh_on_rotation=True)
        first = service.generate_tokens("todolist", 1)
        service.refresh_tokens(first.refresh_token)
        with pytest.raises(TokenError) as exc:
            service.refresh_tokens(first.refresh_token)
        assert exc.value.code == "REVOKED_TOKEN"

    def test_revoke(self, service):
        tokens = service.generate_tokens("todolist", 1001)
        service.revoke_token(tokens.access_token)
        with pytest.raises(TokenError) as exc:
            service.validate_access_token(tokens.access_token)
        assert exc.value.code == "REVOKED_TOKEN"
        assert service.is_revoked(tokens.access.token_id)
        # the refresh token of the same pair is unaffected
        assert service.validate_refresh_token(tokens.refresh_token).user_id == 1001

    def test_revoke_is_idempotent(self, service):
        tokens = service.generate_tokens("todolist", 1)
        service.revoke_token(tokens.access_token)
        service.revoke_token(tokens.access_token)
        assert len(service.revocations) == 1

    def test_revoke_expired_token_succeeds(self, service):
        now = datetime.now(timezone.utc)
        token = jwt.encode({
            "user_id": 1, "token_id": "old", "token_type": "access",
            "iat": now - timedelta(hours=2), "exp": now - timedelta(hours=1),
        }, SECRET, algorithm="HS256")
        service.revoke_token(token)
        assert len(service.revocations) == 0

    def test_revoke_garbage_fails(self, service):
        with pytest.raises(TokenError):
            service.revoke_token("garbage")


class TestRevocationStore:
    def test_cleanup(self):
        store = RevocationStore()
        now = datetime.now(timezone.utc)
        store.revoke("old", now - timedelta(days=8))
        store.revoke("new", now)
        assert store.cleanup(now - timedelta(days=7)) == 1
        assert not store.is_revoked("old")
        assert store.is_revoked("new")
        assert store.revoked_at("new") == now

    def test_service_cleanup(self, service):
        tokens = service.generate_tokens("todolist", 1)
        service.revoke_token(tokens.access_token)
        assert service.cleanup_revoked_tokens(datetime.now(timezone.utc) - timedelta(days=1)) == 0
        assert service.cleanup_revoked_tokens(datetime.now(timezone.utc) + timedelta(seconds=1)) == 1
        assert len(service.revocations) == 0
