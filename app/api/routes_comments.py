"""
api/routes_comments.py

Comment submission, listing and moderation.

Listing and submission accept anonymous callers: a missing or non-Bearer
Authorization header simply means "anonymous". Moderation and the admin
views require an admin token (401 without a token, 403 for non-admins).
"""

import logging

from fastapi import APIRouter, Depends, Query, Request, status

from app.api.deps import (
    get_comment_engine,
    get_optional_principal,
    require_capability,
)
from app.core.security import Capability, Principal
from app.models.schemas import (
    AdminCommentListResponse,
    AdminCommentOut,
    CommentCreateRequest,
    CommentListResponse,
    CommentOut,
    CommentResponse,
    CommentStats,
    CommentStatsResponse,
    ModerationAction,
    ModerationRequest,
)
from app.services.comment_service import CommentModerationEngine
from app.utils.request_meta import get_client_identity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/comments", tags=["Comments"])

_require_moderator = require_capability(Capability.MODERATE_COMMENTS)


@router.get("", response_model=CommentListResponse, summary="List comments for a post")
async def list_comments(
    post_id: str = Query(..., alias="postId"),
    caller: Principal = Depends(get_optional_principal),
    engine: CommentModerationEngine = Depends(get_comment_engine),
) -> CommentListResponse:
    """Oldest first. Non-admins only ever see approved comments."""
    comments = await engine.list_for_post(post_id, caller)
    return CommentListResponse(
        post_id=post_id,
        comments=[CommentOut.model_validate(c) for c in comments],
    )


@router.post(
    "",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a comment",
)
async def submit_comment(
    payload: CommentCreateRequest,
    request: Request,
    client_identity: str = Depends(get_client_identity),
    caller: Principal = Depends(get_optional_principal),
    engine: CommentModerationEngine = Depends(get_comment_engine),
) -> CommentResponse:
    """Admin comments are published immediately; everything else waits for review."""
    comment = await engine.submit(
        post_id=payload.post_id,
        author=payload.author,
        content=payload.content,
        caller=caller,
        email=payload.email,
        parent_id=payload.parent_id,
        ip=client_identity,
        user_agent=request.headers.get("user-agent"),
    )
    return CommentResponse(comment=CommentOut.model_validate(comment))


# ─── Admin views ──────────────────────────────────────────────────────────────

@router.get("/all", response_model=AdminCommentListResponse, summary="List every comment (admin)")
async def list_all_comments(
    caller: Principal = Depends(_require_moderator),
    engine: CommentModerationEngine = Depends(get_comment_engine),
) -> AdminCommentListResponse:
    comments = await engine.list_all(caller)
    return AdminCommentListResponse(comments=[AdminCommentOut.model_validate(c) for c in comments])


@router.get("/stats", response_model=CommentStatsResponse, summary="Comment counts by status (admin)")
async def comment_stats(
    caller: Principal = Depends(_require_moderator),
    engine: CommentModerationEngine = Depends(get_comment_engine),
) -> CommentStatsResponse:
    stats = await engine.stats(caller)
    return CommentStatsResponse(stats=CommentStats(**stats))


# ─── Moderation ───────────────────────────────────────────────────────────────

@router.patch("/{comment_id}", response_model=CommentResponse, summary="Approve, reject or delete a comment")
async def moderate_comment(
    comment_id: str,
    payload: ModerationRequest,
    caller: Principal = Depends(_require_moderator),
    engine: CommentModerationEngine = Depends(get_comment_engine),
) -> CommentResponse:
    comment = await engine.moderate(comment_id, payload.action, caller)
    return CommentResponse(comment=CommentOut.model_validate(comment))


@router.delete("/{comment_id}", response_model=CommentResponse, summary="Delete a comment")
async def delete_comment(
    comment_id: str,
    caller: Principal = Depends(_require_moderator),
    engine: CommentModerationEngine = Depends(get_comment_engine),
) -> CommentResponse:
    comment = await engine.moderate(comment_id, ModerationAction.DELETE, caller)
    return CommentResponse(comment=CommentOut.model_validate(comment))
