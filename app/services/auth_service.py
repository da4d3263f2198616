"""
services/auth_service.py

Orchestrates login and registration over the lockout trackers, the
credential store and the token service, and resolves the caller of later
requests from their bearer token.

Login / registration attempt:

    Start ─▶ structural validation ──bad──▶ ValidationError (no counters touched)
          ─▶ RateCheck ──locked──▶ RateLimited (no credential check, counters untouched)
          ─▶ CredentialCheck / UniquenessCheck+Create
                 ├─ ok   ─▶ commit, record_success, issue token ─▶ AuthResult
                 └─ fail ─▶ record_failure ─▶ InvalidCredentials | Conflict

Everything from RateCheck to the record update runs inside
LockoutTracker.attempt(), so concurrent attempts from one client identity
are serialized and cannot all pass RateCheck before a failure is recorded.

Storage and hashing failures propagate as InternalError without touching the
counters.
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

from app.core import security
from app.core.exceptions import (
    Conflict,
    InvalidCredentials,
    NotFound,
    RateLimited,
    TokenInvalid,
    Unauthorized,
    ValidationError,
)
from app.core.security import ANONYMOUS, Principal, TokenService, token_ttl_for
from app.db.models import Account
from app.db.repositories import AccountRepository
from app.models.schemas import Role
from app.services.credential_store import CredentialStore
from app.services.rate_limiter import LockoutAttempt, LockoutTracker
from app.utils.request_meta import extract_bearer_token
from app.utils.validators import (
    AVATAR_URL_MAX_LENGTH,
    FULL_NAME_MAX_LENGTH,
    require_fields,
    validate_email,
    validate_max_length,
    validate_password,
    validate_username,
)

logger = logging.getLogger(__name__)

RevocationCheck = Callable[[str, int], Awaitable[bool]]

PROFILE_FIELDS = ("full_name", "avatar_url", "bio")
PROFILE_FIELD_LIMITS = {"full_name": FULL_NAME_MAX_LENGTH, "avatar_url": AVATAR_URL_MAX_LENGTH}


@dataclass(frozen=True)
class AuthTrackers:
    """The process-wide lockout trackers, one per attempt kind."""
    login: LockoutTracker
    admin_login: LockoutTracker
    register: LockoutTracker


@dataclass
class AuthResult:
    account: Account
    token: str


class AuthenticationService:
    def __init__(
        self,
        credentials: CredentialStore,
        accounts: AccountRepository,
        tokens: TokenService,
        trackers: AuthTrackers,
        is_revoked: Optional[RevocationCheck] = None,
    ) -> None:
        self._credentials = credentials
        self._accounts = accounts
        self._tokens = tokens
        self._trackers = trackers
        self._is_revoked = is_revoked

    # ─── Login ────────────────────────────────────────────────────────────────

    async def login(self, identifier: str, password: str, client_identity: str) -> AuthResult:
        """Username-or-email login for any active account."""
        require_fields(identifier=identifier, password=password)
        return await self._authenticate(
            self._trackers.login, identifier, password, client_identity
        )

    async def admin_login(self, username: str, password: str, client_identity: str) -> AuthResult:
        """Login that only admin accounts can pass."""
        require_fields(username=username, password=password)
        return await self._authenticate(
            self._trackers.admin_login, username, password, client_identity, required_role=Role.ADMIN
        )

    async def _authenticate(
        self,
        tracker: LockoutTracker,
        identifier: str,
        password: str,
        client_identity: str,
        required_role: Optional[Role] = None,
    ) -> AuthResult:
        async with tracker.attempt(client_identity) as attempt:
            await self._rate_check(attempt)

            account = await self._credentials.verify_credentials(identifier, password)
            if account is not None and required_role is not None and account.role != required_role.value:
                account = None

            if account is None:
                await attempt.record_failure()
                logger.warning(f"Failed {tracker.scope} from {client_identity}")
                raise InvalidCredentials()

            account = await self._accounts.touch_last_login(account)
            await self._accounts.commit()
            await attempt.record_success()

        token = self._issue_for(account)
        logger.info(f"Successful {tracker.scope}: {account.username} | role: {account.role}")
        return AuthResult(account=account, token=token)

    # ─── Registration ─────────────────────────────────────────────────────────

    async def register(
        self,
        username: str,
        email: str,
        password: str,
        client_identity: str,
        full_name: Optional[str] = None,
    ) -> AuthResult:
        require_fields(username=username, email=email, password=password)
        username = validate_username(username)
        email = validate_email(email)
        validate_password(password)
        full_name = validate_max_length("Full name", (full_name or "").strip() or None, FULL_NAME_MAX_LENGTH)

        tracker = self._trackers.register
        async with tracker.attempt(client_identity) as attempt:
            await self._rate_check(attempt)

            if await self._credentials.username_taken(username):
                await attempt.record_failure()
                logger.warning(f"Registration conflict on username from {client_identity}")
                raise Conflict("Username is already taken.")

            if await self._credentials.email_taken(email):
                await attempt.record_failure()
                logger.warning(f"Registration conflict on email from {client_identity}")
                raise Conflict("Email is already registered.")

            try:
                account = await self._credentials.create_account(
                    username=username,
                    password=password,
                    role=Role.USER,
                    email=email,
                    full_name=full_name,
                )
                await self._accounts.commit()
            except Conflict:
                await attempt.record_failure()
                raise

            await attempt.record_success()

        token = self._issue_for(account)
        logger.info(f"New user registered: {account.username}")
        return AuthResult(account=account, token=token)

    # ─── Caller resolution ────────────────────────────────────────────────────

    async def resolve_principal(self, authorization: Optional[str]) -> Principal:
        """
        ANONYMOUS when there is no well-formed Bearer header. A presented token
        that fails verification raises the matching Unauthorized subclass.
        """
        token = extract_bearer_token(authorization)
        if token is None:
            return ANONYMOUS

        try:
            claims = self._tokens.verify(token)
        except Unauthorized as e:
            logger.warning(f"Token rejected: {type(e).__name__}")
            raise

        if self._is_revoked is not None and await self._is_revoked(claims.subject_id, claims.issued_at):
            logger.warning(f"Token rejected: revoked session for subject {claims.subject_id}")
            raise TokenInvalid()

        return claims.to_principal()

    # ─── Profile & credentials ────────────────────────────────────────────────

    async def get_profile(self, principal: Principal) -> Account:
        if not principal.is_authenticated:
            raise Unauthorized()
        account = await self._credentials.get_account(int(principal.subject_id))
        if account is None or not account.is_active:
            raise NotFound("User not found.")
        return account

    async def update_profile(self, principal: Principal, fields: Dict[str, Optional[str]]) -> Account:
        updates = {name: value for name, value in fields.items() if name in PROFILE_FIELDS and value is not None}
        if not updates:
            raise ValidationError("No updatable profile fields provided.")
        for name, limit in PROFILE_FIELD_LIMITS.items():
            validate_max_length(name, updates.get(name), limit)
        account = await self.get_profile(principal)
        account = await self._accounts.update_profile(account, updates)
        await self._accounts.commit()
        logger.info(f"Profile updated for account id={account.id}")
        return account

    async def change_password(self, principal: Principal, current_password: str, new_password: str) -> Account:
        require_fields(currentPassword=current_password, newPassword=new_password)
        validate_password(new_password)
        account = await self.get_profile(principal)
        if not await security.verify_password_async(current_password, account.password_hash):
            raise ValidationError("Current password is incorrect.")
        account = await self._credentials.update_password(account, new_password)
        await self._accounts.commit()
        return account

    # ─── Helpers ──────────────────────────────────────────────────────────────

    async def _rate_check(self, attempt: LockoutAttempt) -> None:
        remaining = await attempt.remaining_lockout_minutes()
        if remaining is not None:
            logger.warning(f"{attempt.scope} blocked for {attempt.identity} | {remaining} min left")
            raise RateLimited(retry_after_minutes=remaining)

    def _issue_for(self, account: Account) -> str:
        role = Role(account.role)
        return self._tokens.issue(
            subject_id=str(account.id),
            role=role,
            ttl=token_ttl_for(role),
            username=account.username,
        )
