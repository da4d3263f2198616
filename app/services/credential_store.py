"""
services/credential_store.py

Account lookup, credential verification and account creation.

verify_credentials always performs exactly one bcrypt comparison: against the
stored hash when the account exists, against a fixed dummy hash when it does
not. Response time therefore does not reveal whether a username exists.
"""

import logging
from typing import Optional

from app.core import security
from app.db.models import Account
from app.db.repositories import AccountRepository
from app.models.schemas import Role

logger = logging.getLogger(__name__)


class CredentialStore:
    def __init__(self, accounts: AccountRepository) -> None:
        self._accounts = accounts

    async def find_account(self, identifier: str) -> Optional[Account]:
        return await self._accounts.get_by_identifier(identifier)

    async def get_account(self, account_id: int) -> Optional[Account]:
        return await self._accounts.get_by_id(account_id)

    async def verify_credentials(self, identifier: str, password: str) -> Optional[Account]:
        """The matching active account, or None on any mismatch."""
        account = await self.find_account(identifier)

        if account is None:
            await security.verify_password_async(password, security.dummy_password_hash())
            logger.warning("Credential check for unknown identifier.")
            return None

        if not await security.verify_password_async(password, account.password_hash):
            return None

        if not account.is_active:
            logger.warning(f"Credential check on deactivated account id={account.id}")
            return None

        return account

    async def username_taken(self, username: str) -> bool:
        return await self._accounts.get_by_username(username) is not None

    async def email_taken(self, email: str) -> bool:
        return await self._accounts.get_by_email(email) is not None

    async def create_account(
        self,
        username: str,
        password: str,
        role: Role = Role.USER,
        email: Optional[str] = None,
        full_name: Optional[str] = None,
    ) -> Account:
        """
        Hashes the password off the event loop and inserts the account.
        Raises Conflict if the username or email was taken concurrently.
        """
        password_hash = await security.hash_password_async(password)
        account = Account(
            username=username,
            email=email,
            password_hash=password_hash,
            role=Role(role).value,
            full_name=full_name or username,
            is_active=True,
        )
        account = await self._accounts.insert(account)
        logger.info(f"Account created: {account.username} | role: {account.role}")
        return account

    async def update_password(self, account: Account, new_password: str) -> Account:
        password_hash = await security.hash_password_async(new_password)
        account = await self._accounts.update_password(account, password_hash)
        logger.info(f"Password updated for account id={account.id}")
        return account
