"""
models/schemas.py

Pydantic models are the contract between the Inkpost backend and the blog
frontend. Field names on the wire are camelCase (postId, fullName, ...) to
match what the frontend already sends; Python code uses snake_case.

Structural checks that belong to the core (password policy, email format,
comment lengths) live in utils/validators.py, not here, so that services
enforce them no matter which transport calls them.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ─────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────

class Role(str, Enum):
    ANONYMOUS = "anonymous"
    USER = "user"
    ADMIN = "admin"


class CommentStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ModerationAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    DELETE = "delete"


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


# ─────────────────────────────────────────────
# Authentication
# ─────────────────────────────────────────────

class LoginRequest(_WireModel):
    """`identifier` is a username or an email address."""
    identifier: str
    password: str


class AdminLoginRequest(_WireModel):
    username: str
    password: str


class RegisterRequest(_WireModel):
    username: str
    email: str
    password: str
    full_name: Optional[str] = Field(default=None, alias="fullName")


class PasswordChangeRequest(_WireModel):
    current_password: str = Field(..., alias="currentPassword")
    new_password: str = Field(..., alias="newPassword")


class ProfileUpdateRequest(_WireModel):
    full_name: Optional[str] = Field(default=None, alias="fullName")
    avatar_url: Optional[str] = Field(default=None, alias="avatarUrl")
    bio: Optional[str] = None


class AccountOut(_WireModel):
    """Public-safe account view. Never includes password_hash."""
    id: int
    username: str
    email: Optional[str] = None
    role: str
    full_name: Optional[str] = Field(default=None, alias="fullName")
    avatar_url: Optional[str] = Field(default=None, alias="avatarUrl")
    bio: Optional[str] = None
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")


class AuthResponse(_WireModel):
    success: bool = True
    token: str
    user: AccountOut
    message: str


class ProfileResponse(_WireModel):
    success: bool = True
    user: AccountOut
    message: Optional[str] = None


class MessageResponse(_WireModel):
    success: bool = True
    message: str


# ─────────────────────────────────────────────
# Comments
# ─────────────────────────────────────────────

class CommentCreateRequest(_WireModel):
    post_id: str = Field(..., alias="postId")
    author: str
    content: str
    email: Optional[str] = None
    parent_id: Optional[str] = Field(default=None, alias="parentId")


class ModerationRequest(_WireModel):
    action: ModerationAction


class CommentOut(_WireModel):
    """Public comment view. Forensic fields are deliberately absent."""
    id: str
    post_id: str = Field(..., alias="postId")
    author: str
    content: str
    parent_id: Optional[str] = Field(default=None, alias="parentId")
    status: CommentStatus
    created_at: datetime = Field(..., alias="createdAt")


class AdminCommentOut(CommentOut):
    email: Optional[str] = None
    ip: Optional[str] = None
    user_agent: Optional[str] = Field(default=None, alias="userAgent")


class CommentResponse(_WireModel):
    success: bool = True
    comment: CommentOut


class CommentListResponse(_WireModel):
    success: bool = True
    post_id: Optional[str] = Field(default=None, alias="postId")
    comments: List[CommentOut]


class AdminCommentListResponse(_WireModel):
    success: bool = True
    comments: List[AdminCommentOut]


class CommentStats(_WireModel):
    total: int
    approved: int
    pending: int
    rejected: int


class CommentStatsResponse(_WireModel):
    success: bool = True
    stats: CommentStats
