"""
db/models.py

SQLAlchemy ORM models for the Inkpost schema.

- `Account.password_hash` only ever holds a bcrypt hash; it is never
  serialized into a response model.
- `Account.role` is copied into issued tokens; there is no separate
  authorization table.
- `Comment.ip` / `Comment.user_agent` exist for abuse forensics and are only
  exposed to admins.
"""

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Integer,
    String,
    Text,
    func,
)

from app.db.database import Base


def _new_comment_id() -> str:
    return str(uuid.uuid4())


class Account(Base):
    """
    Admin or regular user account. Maps to the `accounts` table.

    Role values: "admin" | "user"
    """

    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    username = Column(String(50), unique=True, index=True, nullable=False)

    # Provisioned admins may have no email address.
    email = Column(String(255), unique=True, index=True, nullable=True)

    password_hash = Column(String(255), nullable=False)

    role = Column(String(20), nullable=False, default="user")

    full_name = Column(String(255), nullable=True)
    avatar_url = Column(String(500), nullable=True)
    bio = Column(Text, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)

    last_login = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Account id={self.id} username={self.username} role={self.role} active={self.is_active}>"


class Comment(Base):
    """
    A reader comment on an article. Maps to the `comments` table.

    Status values: "pending" | "approved" | "rejected"
    `parent_id` is an unvalidated reference to another comment id.
    """

    __tablename__ = "comments"

    id = Column(String(36), primary_key=True, default=_new_comment_id)

    post_id = Column(String(255), index=True, nullable=False)

    # Stored HTML-escaped: up to six characters per accepted input character.
    author = Column(String(300), nullable=False)
    email = Column(String(255), nullable=True)
    content = Column(Text, nullable=False)

    parent_id = Column(String(255), nullable=True)

    status = Column(String(20), nullable=False, default="pending", index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, index=True)

    ip = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)

    def __repr__(self) -> str:
        return f"<Comment id={self.id} post={self.post_id} status={self.status}>"
