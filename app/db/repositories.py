"""
db/repositories.py

Persistence for accounts and comments over a request-scoped AsyncSession.

Lookups return None for a missing row; mutations of a missing row raise
NotFound. Any other SQLAlchemy failure surfaces as PersistenceError with the
original exception chained, so the API layer can tell 404 from 500.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import Conflict, NotFound, PersistenceError
from app.db.models import Account, Comment
from app.models.schemas import CommentStatus

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def commit_session(db: AsyncSession) -> None:
    """Commits the unit of work. Services call this before they return."""
    try:
        await db.commit()
    except SQLAlchemyError as e:
        logger.error(f"Commit failed: {e!r}")
        await db.rollback()
        raise PersistenceError() from e


class AccountRepository:
    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def commit(self) -> None:
        await commit_session(self._db)

    async def get_by_identifier(self, identifier: str) -> Optional[Account]:
        """Exact match on username or on email."""
        try:
            result = await self._db.execute(
                select(Account).where(
                    or_(Account.username == identifier, Account.email == identifier)
                )
            )
            return result.scalars().first()
        except SQLAlchemyError as e:
            raise PersistenceError() from e

    async def get_by_username(self, username: str) -> Optional[Account]:
        try:
            result = await self._db.execute(select(Account).where(Account.username == username))
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise PersistenceError() from e

    async def get_by_email(self, email: str) -> Optional[Account]:
        try:
            result = await self._db.execute(select(Account).where(Account.email == email))
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise PersistenceError() from e

    async def get_by_id(self, account_id: int) -> Optional[Account]:
        try:
            return await self._db.get(Account, account_id)
        except SQLAlchemyError as e:
            raise PersistenceError() from e

    async def insert(self, account: Account) -> Account:
        """
        Inserts and flushes so the generated id is available. A unique
        constraint violation means another request registered the same
        username or email first.
        """
        self._db.add(account)
        try:
            await self._db.flush()
        except IntegrityError as e:
            await self._db.rollback()
            raise Conflict("Username or email is already registered.") from e
        except SQLAlchemyError as e:
            raise PersistenceError() from e
        await self._db.refresh(account)
        return account

    async def update_password(self, account: Account, password_hash: str) -> Account:
        account.password_hash = password_hash
        return await self._flush(account)

    async def update_profile(self, account: Account, fields: Dict[str, Optional[str]]) -> Account:
        for name, value in fields.items():
            setattr(account, name, value)
        return await self._flush(account)

    async def touch_last_login(self, account: Account) -> Account:
        account.last_login = utcnow()
        return await self._flush(account)

    async def _flush(self, account: Account) -> Account:
        try:
            await self._db.flush()
            await self._db.refresh(account)
        except SQLAlchemyError as e:
            raise PersistenceError() from e
        return account


class CommentRepository:
    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def commit(self) -> None:
        await commit_session(self._db)

    async def insert(self, comment: Comment) -> Comment:
        if comment.created_at is None:
            comment.created_at = utcnow()
        self._db.add(comment)
        try:
            await self._db.flush()
        except SQLAlchemyError as e:
            raise PersistenceError() from e
        return comment

    async def get(self, comment_id: str) -> Optional[Comment]:
        try:
            return await self._db.get(Comment, comment_id)
        except SQLAlchemyError as e:
            raise PersistenceError() from e

    async def list_by_post(self, post_id: str, include_pending: bool) -> List[Comment]:
        """Oldest first. Without include_pending only approved rows are returned."""
        query = select(Comment).where(Comment.post_id == post_id)
        if not include_pending:
            query = query.where(Comment.status == CommentStatus.APPROVED.value)
        query = query.order_by(Comment.created_at.asc())
        try:
            result = await self._db.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise PersistenceError() from e

    async def list_all(self) -> List[Comment]:
        """Every comment across posts, newest first."""
        try:
            result = await self._db.execute(select(Comment).order_by(Comment.created_at.desc()))
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise PersistenceError() from e

    async def count_by_status(self) -> Dict[str, int]:
        try:
            result = await self._db.execute(
                select(Comment.status, func.count(Comment.id)).group_by(Comment.status)
            )
            return {status: count for status, count in result.all()}
        except SQLAlchemyError as e:
            raise PersistenceError() from e

    async def update_status(self, comment_id: str, status: CommentStatus) -> Comment:
        comment = await self.get(comment_id)
        if comment is None:
            raise NotFound("Comment not found.")
        comment.status = status.value
        try:
            await self._db.flush()
        except SQLAlchemyError as e:
            raise PersistenceError() from e
        return comment

    async def delete(self, comment_id: str) -> None:
        try:
            result = await self._db.execute(delete(Comment).where(Comment.id == comment_id))
        except SQLAlchemyError as e:
            raise PersistenceError() from e
        if result.rowcount == 0:
            raise NotFound("Comment not found.")
