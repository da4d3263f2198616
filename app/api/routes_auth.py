"""
api/routes_auth.py

Authentication endpoints for the Inkpost blog.

- Login and registration run through AuthenticationService, which applies
  the per-IP lockout before any credential check.
- Request bodies are parsed and validated by FastAPI before these handlers
  run; a malformed body is a 400 and never counts against the lockout budget.
- Unknown usernames and wrong passwords produce the same 401 message.
- Passwords and tokens never appear in log lines.
"""

import logging

from fastapi import APIRouter, Depends, status

from app.api.deps import get_auth_service, get_current_principal, require_capability
from app.core.security import Capability, Principal
from app.models.schemas import (
    AccountOut,
    AdminLoginRequest,
    AuthResponse,
    LoginRequest,
    MessageResponse,
    PasswordChangeRequest,
    ProfileResponse,
    ProfileUpdateRequest,
    RegisterRequest,
)
from app.services.auth_service import AuthenticationService, AuthResult
from app.utils.request_meta import get_client_identity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])

_require_profile_editor = require_capability(Capability.EDIT_PROFILE)


def _auth_response(result: AuthResult, message: str) -> AuthResponse:
    return AuthResponse(
        token=result.token,
        user=AccountOut.model_validate(result.account),
        message=message,
    )


# ─── A. Login ─────────────────────────────────────────────────────────────────

@router.post(
    "/login",
    response_model=AuthResponse,
    summary="Log in with username or email",
)
async def login(
    payload: LoginRequest,
    client_identity: str = Depends(get_client_identity),
    auth: AuthenticationService = Depends(get_auth_service),
) -> AuthResponse:
    """
    Returns a signed bearer token (7 days for users, 24 hours for admins).

    429 while the caller's IP is locked out, 401 on bad credentials.
    """
    result = await auth.login(payload.identifier, payload.password, client_identity)
    return _auth_response(result, "Login successful.")


@router.post(
    "/admin/login",
    response_model=AuthResponse,
    summary="Log in to the admin panel",
)
async def admin_login(
    payload: AdminLoginRequest,
    client_identity: str = Depends(get_client_identity),
    auth: AuthenticationService = Depends(get_auth_service),
) -> AuthResponse:
    """Only admin accounts can pass; anyone else gets the generic 401."""
    result = await auth.admin_login(payload.username, payload.password, client_identity)
    return _auth_response(result, "Authentication successful.")


# ─── B. Registration ──────────────────────────────────────────────────────────

@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new reader account",
)
async def register(
    payload: RegisterRequest,
    client_identity: str = Depends(get_client_identity),
    auth: AuthenticationService = Depends(get_auth_service),
) -> AuthResponse:
    """
    Creates a `user` account and logs it in.

    400 on policy violations (password needs 8+ characters with letters and
    digits), 409 when the username or email is taken, 429 after repeated
    failures from the same IP.
    """
    result = await auth.register(
        username=payload.username,
        email=payload.email,
        password=payload.password,
        client_identity=client_identity,
        full_name=payload.full_name,
    )
    return _auth_response(result, "Registration successful.")


# ─── C. Current user ──────────────────────────────────────────────────────────

@router.get(
    "/me",
    response_model=ProfileResponse,
    summary="Get the profile of the authenticated caller",
)
async def get_me(
    principal: Principal = Depends(get_current_principal),
    auth: AuthenticationService = Depends(get_auth_service),
) -> ProfileResponse:
    account = await auth.get_profile(principal)
    return ProfileResponse(user=AccountOut.model_validate(account))


@router.put(
    "/me",
    response_model=ProfileResponse,
    summary="Update display name, avatar or bio",
)
async def update_me(
    payload: ProfileUpdateRequest,
    principal: Principal = Depends(_require_profile_editor),
    auth: AuthenticationService = Depends(get_auth_service),
) -> ProfileResponse:
    account = await auth.update_profile(principal, payload.model_dump())
    return ProfileResponse(user=AccountOut.model_validate(account), message="Profile updated.")


@router.put(
    "/password",
    response_model=MessageResponse,
    summary="Change the caller's password",
)
async def change_password(
    payload: PasswordChangeRequest,
    principal: Principal = Depends(_require_profile_editor),
    auth: AuthenticationService = Depends(get_auth_service),
) -> MessageResponse:
    await auth.change_password(principal, payload.current_password, payload.new_password)
    return MessageResponse(message="Password updated.")
