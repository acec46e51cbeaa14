"""
security helpers:
- Argon2 hashing via argon2-cffi for passwords, refresh tokens and reset tokens
- JWT creation/verification via PyJWT (separate secrets for access and refresh tokens)
- naive-UTC clock shared by the services
"""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Mapping

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from utils.exceptions import InvalidToken

ph = PasswordHasher()

ACCESS = "access"
REFRESH = "refresh"


def generate_jti() -> str:
    """Generate a unique JTI (JWT ID).
    """
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Current time as naive UTC, the form every timestamp column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def build_password_hasher(config: Mapping[str, Any]) -> PasswordHasher:
    """Argon2id hasher with cost parameters taken from the app config."""
    return PasswordHasher(
        time_cost=int(config.get("ARGON2_TIME_COST", ph.time_cost)),
        memory_cost=int(config.get("ARGON2_MEMORY_COST", ph.memory_cost)),
        parallelism=int(config.get("ARGON2_PARALLELISM", ph.parallelism)),
    )


def hash_password(password: str, hasher: PasswordHasher = ph) -> str:
    """Hash a plaintext secret using Argon2
    """
    return hasher.hash(password)


def verify_password(password: str, password_hash: str, hasher: PasswordHasher = ph) -> bool:
    """ Verify a plaintext secret against an Argon2 hash
    """
    try:
        return hasher.verify(password_hash, password)
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False


class TokenSigner:
    """
    Issues and verifies signed, time-bounded bearer tokens.

    Payload: sub (stringified user id), iss, iat, exp (unix seconds) and a
    random jti, so two tokens issued in the same second still differ.
    Access and refresh tokens are signed with different secrets, so one can
    never be replayed as the other.
    """

    def __init__(
        self,
        issuer: str,
        access_secret: str,
        refresh_secret: str,
        *,
        algorithm: str = "HS256",
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=1),
        clock: Callable[[], datetime] = utcnow,
    ):
        if not issuer:
            raise RuntimeError("Undefined JWT issuer")
        if not access_secret:
            raise RuntimeError("Undefined JWT access token secret")
        if not refresh_secret:
            raise RuntimeError("Undefined JWT refresh token secret")
        if access_secret == refresh_secret:
            raise RuntimeError("JWT access and refresh token secrets must differ")
        self.issuer = issuer
        self.algorithm = algorithm
        self.clock = clock
        self._secrets = {ACCESS: access_secret, REFRESH: refresh_secret}
        self._ttls = {ACCESS: access_ttl, REFRESH: refresh_ttl}

    @classmethod
    def from_config(cls, config: Mapping[str, Any], clock: Callable[[], datetime] = utcnow) -> "TokenSigner":
        return cls(
            config.get("JWT_ISSUER"),
            config.get("JWT_ACCESS_TOKEN_SECRET"),
            config.get("JWT_REFRESH_TOKEN_SECRET"),
            algorithm=config.get("JWT_ALGORITHM", "HS256"),
            access_ttl=config.get("JWT_ACCESS_TOKEN_EXPIRES", timedelta(minutes=15)),
            refresh_ttl=config.get("JWT_REFRESH_TOKEN_EXPIRES", timedelta(days=1)),
            clock=clock,
        )

    def ttl(self, kind: str) -> timedelta:
        return self._ttls[kind]

    def _sign(self, kind: str, user_id: int, now: datetime | None) -> str:
        issued = now or self.clock()
        iat = int(issued.replace(tzinfo=timezone.utc).timestamp())
        payload = {
            "sub": str(user_id),
            "iss": self.issuer,
            "iat": iat,
            "exp": iat + int(self._ttls[kind].total_seconds()),
            "jti": generate_jti(),
        }
        return jwt.encode(payload, self._secrets[kind], algorithm=self.algorithm)

    def sign_access_token(self, user_id: int, now: datetime | None = None) -> str:
        return self._sign(ACCESS, user_id, now)

    def sign_refresh_token(self, user_id: int, now: datetime | None = None) -> str:
        """Sign a refresh token. Persisting its hash is the session manager's job."""
        return self._sign(REFRESH, user_id, now)

    def verify(self, token: str, kind: str = ACCESS) -> Dict[str, Any]:
        """
        Decode and validate a JWT of the given kind ("access" or "refresh").
        Raises InvalidToken on bad signature, wrong issuer, expiry or a malformed payload.
        """
        if not token:
            raise InvalidToken("Missing token")
        now = int(self.clock().replace(tzinfo=timezone.utc).timestamp())
        try:
            decoded = jwt.decode(
                token,
                self._secrets[kind],
                algorithms=[self.algorithm],
                issuer=self.issuer,
                options={"require": ["sub", "iss", "iat", "exp"], "verify_exp": False, "verify_iat": False},
            )
        except jwt.InvalidTokenError as exc:
            raise InvalidToken(f"Invalid token: {exc}") from exc

        # exp is checked against the injected clock, not the wall clock.
        if now >= int(decoded["exp"]):
            raise InvalidToken("Token expired")
        return decoded

    def subject(self, token: str, kind: str = ACCESS) -> int:
        """Verify a token and return its subject as a user id."""
        decoded = self.verify(token, kind)
        try:
            return int(decoded["sub"])
        except (TypeError, ValueError) as exc:
            raise InvalidToken("Invalid token subject") from exc
