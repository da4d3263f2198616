"""Login, registration, caller resolution and profile management."""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import security
from app.core.exceptions import (
    Conflict,
    InvalidCredentials,
    NotFound,
    PersistenceError,
    RateLimited,
    TokenExpired,
    TokenInvalid,
    TokenMalformed,
    Unauthorized,
    ValidationError,
)
from app.core.security import ANONYMOUS, Principal
from app.db.repositories import AccountRepository
from app.models.schemas import Role
from app.services.auth_service import AuthenticationService

IP = "203.0.113.7"


@pytest.fixture
async def alice(credentials):
    return await credentials.create_account("alice", "Wonderland1", email="alice@example.com")


@pytest.fixture
async def root_admin(credentials):
    return await credentials.create_account("root", "RootPass123", role=Role.ADMIN)


class TestLogin:
    async def test_success_returns_user_token(self, auth_service, token_service, alice):
        result = await auth_service.login("alice", "Wonderland1", IP)
        claims = token_service.verify(result.token)
        assert claims.subject_id == str(alice.id)
        assert claims.role is Role.USER
        assert claims.expires_at - claims.issued_at == 7 * 24 * 3600
        assert result.account.last_login is not None

    async def test_admin_token_lasts_a_day(self, auth_service, token_service, root_admin):
        result = await auth_service.login("root", "RootPass123", IP)
        claims = token_service.verify(result.token)
        assert claims.role is Role.ADMIN
        assert claims.expires_at - claims.issued_at == 24 * 3600

    async def test_wrong_password_counts_failure(self, auth_service, trackers, alice):
        with pytest.raises(InvalidCredentials):
            await auth_service.login("alice", "nope-nope1", IP)
        assert (await trackers.login.get_record(IP)).failed_count == 1

    async def test_missing_fields_do_not_touch_tracker(self, auth_service, trackers):
        with pytest.raises(ValidationError):
            await auth_service.login("", "whatever", IP)
        with pytest.raises(ValidationError):
            await auth_service.login("alice", "   ", IP)
        assert await trackers.login.get_record(IP) is None

    async def test_brute_force_lockout_and_recovery(self, auth_service, trackers, clock, alice):
        for _ in range(5):
            with pytest.raises(InvalidCredentials):
                await auth_service.login("alice", "wrong-guess1", IP)

        # Correct password is not even checked while locked.
        with pytest.raises(RateLimited) as excinfo:
            await auth_service.login("alice", "Wonderland1", IP)
        assert excinfo.value.retry_after_minutes == 15
        assert (await trackers.login.get_record(IP)).failed_count == 5

        clock.advance(minutes=15)
        result = await auth_service.login("alice", "Wonderland1", IP)
        assert result.account.id == alice.id
        assert await trackers.login.get_record(IP) is None

    async def test_success_resets_counter(self, auth_service, trackers, alice):
        for _ in range(3):
            with pytest.raises(InvalidCredentials):
                await auth_service.login("alice", "wrong-guess1", IP)
        await auth_service.login("alice", "Wonderland1", IP)
        assert await trackers.login.get_record(IP) is None

    async def test_lockout_is_per_client(self, auth_service, alice):
        for _ in range(5):
            with pytest.raises(InvalidCredentials):
                await auth_service.login("alice", "wrong-guess1", IP)
        result = await auth_service.login("alice", "Wonderland1", "198.51.100.1")
        assert result.account.username == "alice"


class TestConcurrentAttempts:
    async def test_parallel_guesses_stop_at_max_attempts(self, auth_service, trackers, alice, monkeypatch):
        checked = []
        original = security.verify_password_async

        async def slow_verify(plain, hashed):
            checked.append(plain)
            await asyncio.sleep(0.01)
            return await original(plain, hashed)

        monkeypatch.setattr(security, "verify_password_async", slow_verify)

        results = await asyncio.gather(
            *(auth_service.login("alice", f"guess-{i}-x", IP) for i in range(30)),
            return_exceptions=True,
        )

        assert len(checked) == 5
        assert sum(isinstance(r, InvalidCredentials) for r in results) == 5
        assert sum(isinstance(r, RateLimited) for r in results) == 25
        assert (await trackers.login.get_record(IP)).failed_count == 5

    async def test_parallel_registrations_for_one_name(self, auth_service, trackers):
        results = await asyncio.gather(
            *(
                auth_service.register("twin", f"twin{i}@example.com", "TwinPass123", IP)
                for i in range(10)
            ),
            return_exceptions=True,
        )

        assert sum(not isinstance(r, Exception) for r in results) == 1
        assert sum(isinstance(r, Conflict) for r in results) == 3
        assert sum(isinstance(r, RateLimited) for r in results) == 6


class TestAdminLogin:
    async def test_admin_passes(self, auth_service, root_admin):
        result = await auth_service.admin_login("root", "RootPass123", IP)
        assert result.account.role == Role.ADMIN.value

    async def test_regular_user_is_refused(self, auth_service, trackers, alice):
        with pytest.raises(InvalidCredentials):
            await auth_service.admin_login("alice", "Wonderland1", IP)
        assert (await trackers.admin_login.get_record(IP)).failed_count == 1
        assert await trackers.login.get_record(IP) is None


class TestRegister:
    async def test_register_issues_user_token(self, auth_service, token_service):
        result = await auth_service.register("newbie", "newbie@example.com", "Newbie1234", IP, full_name="New Bie")
        assert result.account.full_name == "New Bie"
        assert token_service.verify(result.token).role is Role.USER

    @pytest.mark.parametrize(
        "username,email,password",
        [
            ("", "x@example.com", "Password1"),
            ("x", "not-an-email", "Password1"),
            ("x", "x@example.com", "short1"),
            ("x", "x@example.com", "lettersonly"),
            ("x", "x@example.com", "12345678"),
        ],
    )
    async def test_invalid_input_does_not_touch_tracker(self, auth_service, trackers, username, email, password):
        with pytest.raises(ValidationError):
            await auth_service.register(username, email, password, IP)
        assert await trackers.register.get_record(IP) is None

    async def test_conflicts_count_toward_lockout(self, auth_service, trackers, alice):
        with pytest.raises(Conflict):
            await auth_service.register("alice", "fresh@example.com", "Password1", IP)
        with pytest.raises(Conflict):
            await auth_service.register("fresh", "alice@example.com", "Password1", IP)
        with pytest.raises(Conflict):
            await auth_service.register("alice", "alice@example.com", "Password1", IP)

        with pytest.raises(RateLimited) as excinfo:
            await auth_service.register("brandnew", "brandnew@example.com", "Password1", IP)
        assert excinfo.value.retry_after_minutes == 60
        assert (await trackers.register.get_record(IP)).failed_count == 3

    async def test_overlong_full_name_is_rejected_before_tracking(self, auth_service, trackers):
        with pytest.raises(ValidationError):
            await auth_service.register("longname", "long@example.com", "Password1", IP, full_name="n" * 256)
        assert await trackers.register.get_record(IP) is None

    async def test_failed_commit_is_reported_and_keeps_counters(self, auth_service, trackers, credentials, alice, monkeypatch):
        with pytest.raises(Conflict):
            await auth_service.register("alice", "fresh@example.com", "Password1", IP)

        async def failing_commit(self):
            raise OperationalError("COMMIT", {}, Exception("database is locked"))

        monkeypatch.setattr(AsyncSession, "commit", failing_commit)
        with pytest.raises(PersistenceError):
            await auth_service.register("fresh", "fresh@example.com", "Password1", IP)
        monkeypatch.undo()

        assert (await trackers.register.get_record(IP)).failed_count == 1
        assert not await credentials.username_taken("fresh")


class TestResolvePrincipal:
    async def test_missing_header_is_anonymous(self, auth_service):
        assert await auth_service.resolve_principal(None) is ANONYMOUS
        assert await auth_service.resolve_principal("Basic abc") is ANONYMOUS

    async def test_valid_token(self, auth_service, alice):
        result = await auth_service.login("alice", "Wonderland1", IP)
        principal = await auth_service.resolve_principal(f"Bearer {result.token}")
        assert principal.subject_id == str(alice.id)
        assert principal.role is Role.USER

    async def test_garbage_token_raises(self, auth_service):
        with pytest.raises(TokenMalformed):
            await auth_service.resolve_principal("Bearer garbage")

    async def test_expired_token_raises(self, auth_service, clock, alice):
        result = await auth_service.login("alice", "Wonderland1", IP)
        clock.advance(seconds=7 * 24 * 3600)
        with pytest.raises(TokenExpired):
            await auth_service.resolve_principal(f"Bearer {result.token}")

    async def test_revocation_hook(self, db_session, credentials, token_service, trackers, alice):
        revoked = set()

        async def is_revoked(subject_id, issued_at):
            return subject_id in revoked

        service = AuthenticationService(
            credentials, AccountRepository(db_session), token_service, trackers, is_revoked=is_revoked
        )
        token = token_service.issue(str(alice.id), Role.USER, timedelta(hours=1))
        assert (await service.resolve_principal(f"Bearer {token}")).is_authenticated

        revoked.add(str(alice.id))
        with pytest.raises(TokenInvalid):
            await service.resolve_principal(f"Bearer {token}")


class TestProfile:
    async def test_get_profile(self, auth_service, alice):
        principal = Principal(role=Role.USER, subject_id=str(alice.id))
        assert (await auth_service.get_profile(principal)).username == "alice"

    async def test_anonymous_has_no_profile(self, auth_service):
        with pytest.raises(Unauthorized):
            await auth_service.get_profile(ANONYMOUS)

    async def test_missing_account(self, auth_service):
        with pytest.raises(NotFound):
            await auth_service.get_profile(Principal(role=Role.USER, subject_id="999"))

    async def test_update_profile_ignores_unknown_fields(self, auth_service, alice):
        principal = Principal(role=Role.USER, subject_id=str(alice.id))
        account = await auth_service.update_profile(principal, {"bio": "hi", "role": "admin"})
        assert account.bio == "hi"
        assert account.role == Role.USER.value

    async def test_overlong_avatar_url_is_rejected(self, auth_service, alice):
        principal = Principal(role=Role.USER, subject_id=str(alice.id))
        with pytest.raises(ValidationError):
            await auth_service.update_profile(principal, {"avatar_url": "https://x.io/" + "a" * 500})

    async def test_empty_update_is_rejected(self, auth_service, alice):
        principal = Principal(role=Role.USER, subject_id=str(alice.id))
        with pytest.raises(ValidationError):
            await auth_service.update_profile(principal, {"full_name": None})

    async def test_change_password(self, auth_service, alice):
        principal = Principal(role=Role.USER, subject_id=str(alice.id))
        await auth_service.change_password(principal, "Wonderland1", "LookingGlass2")
        result = await auth_service.login("alice", "LookingGlass2", IP)
        assert result.account.id == alice.id

    async def test_change_password_requires_current(self, auth_service, alice):
        principal = Principal(role=Role.USER, subject_id=str(alice.id))
        with pytest.raises(ValidationError):
            await auth_service.change_password(principal, "wrong-one1", "LookingGlass2")

    async def test_change_password_validates_new(self, auth_service, alice):
        principal = Principal(role=Role.USER, subject_id=str(alice.id))
        with pytest.raises(ValidationError):
            await auth_service.change_password(principal, "Wonderland1", "weak")
