"""
core/security.py

Cryptographic utilities and caller identity for Inkpost.

1. bcrypt (via passlib) for password hashing. Hashing and verification are
   CPU-bound, so the async wrappers push them onto a worker thread
   with asyncio.to_thread and the event loop keeps serving other requests.

2. JWT (PyJWT, HS256) for stateless session tokens. The token carries the
   subject id and role; authorization is a pure function of verified claims.
   Admin sessions last 24h, regular user sessions 7 days.

3. Principal / Capability: what a caller may do is looked up from its role in
   a capability table, so "anonymous", "user" and "admin" are values of one
   type rather than a class hierarchy.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from functools import lru_cache
from typing import Callable, Dict, FrozenSet, Optional

import jwt
from jwt.exceptions import DecodeError, InvalidSignatureError, InvalidTokenError
from passlib.context import CryptContext

from app.core.config import DEV_JWT_SECRET, get_settings
from app.core.exceptions import TokenExpired, TokenInvalid, TokenMalformed
from app.models.schemas import Role

logger = logging.getLogger(__name__)

# ─── Password Hashing ─────────────────────────────────────────────────────────

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=get_settings().bcrypt_rounds,
)


def get_password_hash(password: str) -> str:
    """Hashes a plaintext password with bcrypt and a fresh random salt."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Constant-time comparison of a plaintext password against a bcrypt hash."""
    return pwd_context.verify(plain_password, hashed_password)


@lru_cache()
def dummy_password_hash() -> str:
    """
    A real bcrypt hash of a throwaway secret. Unknown identifiers are checked
    against it so a miss costs one bcrypt comparison, same as a wrong password.
    """
    return get_password_hash("inkpost-timing-equalizer")


async def hash_password_async(password: str) -> str:
    return await asyncio.to_thread(get_password_hash, password)


async def verify_password_async(plain_password: str, hashed_password: str) -> bool:
    return await asyncio.to_thread(verify_password, plain_password, hashed_password)


# ─── Principal & Capabilities ─────────────────────────────────────────────────

class Capability(str, Enum):
    VIEW_PENDING_COMMENTS = "view_pending_comments"
    MODERATE_COMMENTS = "moderate_comments"
    EDIT_PROFILE = "edit_profile"


_ROLE_CAPABILITIES: Dict[Role, FrozenSet[Capability]] = {
    Role.ANONYMOUS: frozenset(),
    Role.USER: frozenset({Capability.EDIT_PROFILE}),
    Role.ADMIN: frozenset(Capability),
}


@dataclass(frozen=True)
class Principal:
    """The resolved caller of a request."""

    role: Role = Role.ANONYMOUS
    subject_id: Optional[str] = None
    username: Optional[str] = None
    issued_at: Optional[int] = None

    @property
    def is_authenticated(self) -> bool:
        return self.role is not Role.ANONYMOUS

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    def can(self, capability: Capability) -> bool:
        return capability in _ROLE_CAPABILITIES[self.role]


ANONYMOUS = Principal()


# ─── JWT Token Management ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class TokenClaims:
    subject_id: str
    role: Role
    issued_at: int
    expires_at: int
    username: Optional[str] = None

    def to_principal(self) -> Principal:
        return Principal(
            role=self.role,
            subject_id=self.subject_id,
            username=self.username,
            issued_at=self.issued_at,
        )


_TOKEN_ROLES = {Role.ADMIN.value, Role.USER.value}


class TokenService:
    """
    Issues and verifies signed, time-bound session tokens.

    Expiry is checked against the injected clock (seconds since epoch) rather
    than PyJWT's own wall clock, so `now >= exp` is the single expiry rule.
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        issuer: str = "inkpost",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._issuer = issuer
        self._clock = clock

    def issue(
        self,
        subject_id: str,
        role: Role,
        ttl: timedelta,
        username: Optional[str] = None,
    ) -> str:
        now = int(self._clock())
        payload = {
            "sub": str(subject_id),
            "role": Role(role).value,
            "iat": now,
            "exp": now + int(ttl.total_seconds()),
            "iss": self._issuer,
        }
        if username:
            payload["username"] = username

        token = jwt.encode(payload, self._secret, algorithm=self._algorithm)
        logger.debug(f"Token issued for subject {subject_id} | role: {payload['role']} | exp: {payload['exp']}")
        return token

    def verify(self, token: str) -> TokenClaims:
        """
        Returns the claim set or raises:
        - TokenMalformed: not a parseable JWT
        - TokenInvalid: bad signature, wrong issuer, missing/unknown claims
        - TokenExpired: now >= exp
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                issuer=self._issuer,
                options={
                    "require": ["sub", "role", "iat", "exp", "iss"],
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
        except InvalidSignatureError as e:
            raise TokenInvalid() from e
        except DecodeError as e:
            raise TokenMalformed() from e
        except InvalidTokenError as e:
            raise TokenInvalid() from e

        role = payload.get("role")
        issued_at = payload.get("iat")
        expires_at = payload.get("exp")
        if role not in _TOKEN_ROLES or not isinstance(expires_at, int) or not isinstance(issued_at, int):
            raise TokenInvalid()

        if self._clock() >= expires_at:
            raise TokenExpired()

        return TokenClaims(
            subject_id=str(payload["sub"]),
            role=Role(role),
            issued_at=issued_at,
            expires_at=expires_at,
            username=payload.get("username"),
        )


def token_ttl_for(role: Role) -> timedelta:
    """Admin sessions are short-lived; regular user sessions last a week."""
    settings = get_settings()
    if role is Role.ADMIN:
        return timedelta(hours=settings.admin_token_ttl_hours)
    return timedelta(days=settings.user_token_ttl_days)


def build_token_service(clock: Callable[[], float] = time.time) -> TokenService:
    settings = get_settings()
    if settings.jwt_secret_key == DEV_JWT_SECRET and settings.app_env != "development":
        logger.warning("JWT secret is the development fallback. Set JWT_SECRET_KEY in production.")
    return TokenService(
        secret=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
        issuer=settings.jwt_issuer,
        clock=clock,
    )
