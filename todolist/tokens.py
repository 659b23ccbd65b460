# tokens.py — Signed access/refresh tokens with a process-local revocation store
# Features:
# - HMAC-signed JWTs (python-jose) carrying user_id, token_id and token_type
# - Distinct 128-bit token IDs per token, used as the revocation key
# - Refresh rotation (the presented refresh token stays valid unless
#   revoke_refresh_on_rotation is set)
# - Thread-safe revocation map with periodic cleanup

import logging
import secrets
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum as PyEnum
from typing import Any, Dict, Optional, Tuple, Union

from jose import jwt, JWTError, ExpiredSignatureError

from todolist.errors import TokenError

logger = logging.getLogger("todolist.tokens")

HMAC_ALGORITHMS = ("HS256", "HS384", "HS512")


class TokenType(str, PyEnum):
    ACCESS = "access"
    REFRESH = "refresh"


# ============================================================
# TOKEN VIEWS
# ============================================================

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _from_timestamp(value: Any) -> datetime:
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


@dataclass(frozen=True)
class TokenMetadata:
    token_id: str
    token_type: TokenType
    issued_at: datetime
    expires_at: datetime
    not_before: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or _utcnow()) >= self.expires_at

    def time_until_expiry(self, now: Optional[datetime] = None) -> timedelta:
        remaining = self.expires_at - (now or _utcnow())
        return max(remaining, timedelta(0))


@dataclass(frozen=True)
class AuthTokens:
    access_token: str
    refresh_token: str
    access: TokenMetadata
    refresh: TokenMetadata

    @property
    def access_expires_at(self) -> datetime:
        return self.access.expires_at

    @property
    def refresh_expires_at(self) -> datetime:
        return self.refresh.expires_at


@dataclass(frozen=True)
class ValidationResult:
    user_id: int
    issuer: str
    metadata: TokenMetadata
    claims: Dict[str, Any] = field(default_factory=dict)

    @property
    def custom(self) -> Dict[str, Any]:
        return dict(self.claims.get("custom") or {})


# ============================================================
# REVOCATION STORE
# ============================================================

class RevocationStore:
    """token_id -> revoked_at. Reads take no lock; writers serialise on one."""

    def __init__(self):
        self._entries: Dict[str, datetime] = {}
        self._lock = threading.Lock()

    def revoke(self, token_id: str, at: Optional[datetime] = None) -> None:
        if token_id in self._entries:
            return
        with self._lock:
            self._entries.setdefault(token_id, at or _utcnow())

    def is_revoked(self, token_id: str) -> bool:
        return token_id in self._entries

    def revoked_at(self, token_id: str) -> Optional[datetime]:
        return self._entries.get(token_id)

    def cleanup(self, before: datetime) -> int:
        with self._lock:
            stale = [tid for tid, at in list(self._entries.items()) if at < before]
            for tid in stale:
                del self._entries[tid]
        return len(stale)

    def __len__(self) -> int:
        return len(self._entries)


# ============================================================
# TOKEN SERVICE
# ============================================================

class TokenService:
    def __init__(
        self,
        secret_key: str,
        access_ttl: timedelta,
        refresh_ttl: timedelta,
        algorithm: str = "HS256",
        leeway: Union[int, timedelta] = 0,
        revocations: Optional[RevocationStore] = None,
        revoke_refresh_on_rotation: bool = False,
    ):
        if not secret_key:
            raise ValueError("invalid secret key")
        if access_ttl <= timedelta(0) or refresh_ttl <= timedelta(0):
            raise ValueError("invalid token duration")
        if algorithm not in HMAC_ALGORITHMS:
            raise ValueError(f"unsupported signing algorithm: {algorithm}")

        self._secret = secret_key
        self._algorithm = algorithm
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self._leeway = int(leeway.total_seconds()) if isinstance(leeway, timedelta) else int(leeway)
        self.revocations = revocations if revocations is not None else RevocationStore()
        self.revoke_refresh_on_rotation = revoke_refresh_on_rotation

    # --- issuing ---------------------------------------------------

    def _issue(
        self,
        issuer: str,
        user_id: int,
        token_type: TokenType,
        ttl: timedelta,
        custom: Optional[Dict[str, Any]],
    ) -> Tuple[str, TokenMetadata]:
        # JWT time claims have second resolution
        now = _utcnow().replace(microsecond=0)
        token_id = secrets.token_hex(16)
        metadata = TokenMetadata(
            token_id=token_id,
            token_type=token_type,
            issued_at=now,
            expires_at=now + ttl,
            not_before=now,
        )
        claims: Dict[str, Any] = {
            "user_id": user_id,
            "token_id": token_id,
            "token_type": token_type.value,
            "iss": issuer,
            "sub": str(user_id),
            "iat": metadata.issued_at,
            "nbf": metadata.not_before,
            "exp": metadata.expires_at,
            "jti": token_id,
        }
        if custom:
            claims["custom"] = dict(custom)
        try:
            token = jwt.encode(claims, self._secret, algorithm=self._algorithm)
        except (JWTError, TypeError) as e:
            raise TokenError("TOKEN_GENERATION_ERROR", f"failed to generate {token_type.value} token: {e}") from e
        return token, metadata

    def generate_tokens(
        self, issuer: str, user_id: int, custom_claims: Optional[Dict[str, Any]] = None
    ) -> AuthTokens:
        if not user_id:
            raise TokenError("TOKEN_GENERATION_ERROR", "user ID is required")
        access, access_meta = self._issue(issuer, user_id, TokenType.ACCESS, self.access_ttl, custom_claims)
        refresh, refresh_meta = self._issue(issuer, user_id, TokenType.REFRESH, self.refresh_ttl, custom_claims)
        return AuthTokens(access, refresh, access_meta, refresh_meta)

    def refresh_tokens(self, refresh_token: str) -> AuthTokens:
        result = self.validate_refresh_token(refresh_token)
        tokens = self.generate_tokens(result.issuer, result.user_id, result.custom or None)
        if self.revoke_refresh_on_rotation:
            self.revocations.revoke(result.metadata.token_id)
        return tokens

    # --- validation ------------------------------------------------

    def _decode(self, token: str, verify_exp: bool = True) -> Dict[str, Any]:
        if not token:
            raise TokenError("INVALID_TOKEN", "token is empty")
        try:
            header = jwt.get_unverified_header(token)
        except JWTError:
            raise TokenError("INVALID_TOKEN") from None
        if header.get("alg") not in HMAC_ALGORITHMS:
            raise TokenError("INVALID_TOKEN", f"unexpected signing method: {header.get('alg')}")
        try:
            return jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"verify_exp": verify_exp, "verify_aud": False, "leeway": self._leeway},
            )
        except ExpiredSignatureError:
            raise TokenError("EXPIRED_TOKEN") from None
        except JWTError:
            raise TokenError("INVALID_TOKEN") from None

    @staticmethod
    def _to_result(claims: Dict[str, Any]) -> ValidationResult:
        user_id = claims.get("user_id")
        token_id = claims.get("token_id")
        if not isinstance(user_id, int) or isinstance(user_id, bool) or not token_id:
            raise TokenError("INVALID_TOKEN", "token is missing required claims")
        try:
            token_type = TokenType(claims.get("token_type"))
            metadata = TokenMetadata(
                token_id=token_id,
                token_type=token_type,
                issued_at=_from_timestamp(claims["iat"]),
                expires_at=_from_timestamp(claims["exp"]),
                not_before=_from_timestamp(claims.get("nbf", claims["iat"])),
            )
        except (KeyError, TypeError, ValueError):
            raise TokenError("INVALID_TOKEN", "token is missing required claims") from None
        return ValidationResult(user_id=user_id, issuer=claims.get("iss", ""), metadata=metadata, claims=claims)

    def validate_token(self, token: str, expected_type: Optional[TokenType] = None) -> ValidationResult:
        result = self._to_result(self._decode(token))
        if self.revocations.is_revoked(result.metadata.token_id):
            raise TokenError("REVOKED_TOKEN")
        if expected_type is not None and result.metadata.token_type != expected_type:
            raise TokenError(
                "INVALID_TOKEN_TYPE",
                f"expected {expected_type.value} token, got {result.metadata.token_type.value}",
            )
        return result

    def validate_access_token(self, token: str) -> ValidationResult:
        return self.validate_token(token, TokenType.ACCESS)

    def validate_refresh_token(self, token: str) -> ValidationResult:
        return self.validate_token(token, TokenType.REFRESH)

    def get_token_info(self, token: str) -> TokenMetadata:
        """Metadata of a correctly signed token, expired or not."""
        return self._to_result(self._decode(token, verify_exp=False)).metadata

    # --- revocation ------------------------------------------------

    def revoke_token(self, token: str) -> None:
        try:
            claims = self._decode(token)
        except TokenError as e:
            if e.code == "EXPIRED_TOKEN":
                return
            raise
        result = self._to_result(claims)
        self.revocations.revoke(result.metadata.token_id)
        logger.info(
            "Revoked %s token %s for user %s",
            result.metadata.token_type.value, result.metadata.token_id[:8], result.user_id,
        )

    def is_revoked(self, token_id: str) -> bool:
        return self.revocations.is_revoked(token_id)

    def cleanup_revoked_tokens(self, before: datetime) -> int:
        removed = self.revocations.cleanup(before)
        if removed:
            logger.info("Removed %d revocation entries older than %s", removed, before.isoformat())
        return removed
