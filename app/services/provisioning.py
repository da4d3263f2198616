"""
services/provisioning.py

Startup provisioning of the bootstrap admin account. Admins are never
created through the public registration endpoint.
"""

import logging

from app.core.config import get_settings
from app.core.exceptions import Conflict, ValidationError
from app.db.database import AsyncSessionLocal
from app.db.repositories import AccountRepository, commit_session
from app.models.schemas import Role
from app.services.credential_store import CredentialStore
from app.utils.validators import validate_email, validate_password, validate_username

logger = logging.getLogger(__name__)


async def ensure_bootstrap_admin() -> bool:
    """
    Creates the configured admin if no account with that username exists.
    Returns True when an account was created.
    """
    settings = get_settings()
    if not settings.admin_username or not settings.admin_password:
        return False

    try:
        username = validate_username(settings.admin_username)
        validate_password(settings.admin_password)
        email = validate_email(settings.admin_email) if settings.admin_email else None
    except ValidationError as e:
        logger.error(f"Bootstrap admin not created: {e.message}")
        return False

    async with AsyncSessionLocal() as session:
        credentials = CredentialStore(AccountRepository(session))
        if await credentials.find_account(username) is not None:
            return False
        try:
            await credentials.create_account(
                username=username,
                password=settings.admin_password,
                role=Role.ADMIN,
                email=email,
            )
            await commit_session(session)
        except Conflict:
            # Another instance provisioned it first.
            await session.rollback()
            return False

    logger.info(f"Bootstrap admin '{username}' provisioned.")
    return True
