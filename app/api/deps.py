"""
api/deps.py

FastAPI dependencies shared by the routers: per-request services built on
the request's AsyncSession, process-wide collaborators read from app.state
(populated during lifespan startup), and caller resolution.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import Forbidden, Unauthorized
from app.core.security import Capability, Principal, TokenService
from app.db.database import get_db
from app.db.repositories import AccountRepository, CommentRepository
from app.services.auth_service import AuthenticationService, AuthTrackers
from app.services.comment_service import CommentModerationEngine
from app.services.credential_store import CredentialStore


def get_token_service(request: Request) -> TokenService:
    tokens = getattr(request.app.state, "token_service", None)
    if tokens is None:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Token service not initialized.")
    return tokens


def get_auth_trackers(request: Request) -> AuthTrackers:
    trackers = getattr(request.app.state, "auth_trackers", None)
    if trackers is None:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Lockout tracking not initialized.")
    return trackers


def get_auth_service(
    request: Request,
    db: AsyncSession = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
    trackers: AuthTrackers = Depends(get_auth_trackers),
) -> AuthenticationService:
    accounts = AccountRepository(db)
    return AuthenticationService(
        credentials=CredentialStore(accounts),
        accounts=accounts,
        tokens=tokens,
        trackers=trackers,
        is_revoked=getattr(request.app.state, "is_revoked", None),
    )


def get_comment_engine(db: AsyncSession = Depends(get_db)) -> CommentModerationEngine:
    return CommentModerationEngine(CommentRepository(db))


# ─── Caller resolution ────────────────────────────────────────────────────────

async def get_optional_principal(
    authorization: Optional[str] = Header(default=None),
    auth: AuthenticationService = Depends(get_auth_service),
) -> Principal:
    """Anonymous when no Bearer header is sent; 401 when a presented token is bad."""
    return await auth.resolve_principal(authorization)


async def get_current_principal(
    principal: Principal = Depends(get_optional_principal),
) -> Principal:
    if not principal.is_authenticated:
        raise Unauthorized()
    return principal


def require_capability(capability: Capability):
    """
    Factory for capability-guarded dependencies.

    Usage:
        @router.patch("/{comment_id}")
        async def moderate(caller = Depends(require_capability(Capability.MODERATE_COMMENTS))):
            ...
    """
    async def capability_checker(
        principal: Principal = Depends(get_current_principal),
    ) -> Principal:
        if not principal.can(capability):
            raise Forbidden()
        return principal

    return capability_checker
