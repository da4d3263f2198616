"""
services/comment_service.py

Comment lifecycle and visibility rules.

    submit ─▶ pending ──approve──▶ approved
                      └─reject──▶ rejected
    pending | approved | rejected ──delete──▶ (row removed)

Admin submissions start out approved. Nothing ever moves back to pending,
and approved/rejected do not flip into each other; re-applying the current
status is a no-op.

Visibility: only callers allowed to see pending comments get anything other
than approved rows. Public listings are filtered in the query itself, so
pending or rejected rows never reach the response layer.
"""

import logging
from typing import Callable, Dict, List, Optional

from app.core.exceptions import Conflict, Forbidden, NotFound, ValidationError
from app.core.security import Capability, Principal
from app.db.models import Comment
from app.db.repositories import CommentRepository, utcnow
from app.models.schemas import CommentStatus, ModerationAction
from app.utils.validators import (
    PARENT_ID_MAX_LENGTH,
    POST_ID_MAX_LENGTH,
    sanitize_input,
    validate_comment,
    validate_max_length,
)

logger = logging.getLogger(__name__)

# Column widths of the forensic fields; longer client-supplied values are cut.
IP_MAX_LENGTH = 64
USER_AGENT_MAX_LENGTH = 512

_ACTION_TARGETS: Dict[ModerationAction, CommentStatus] = {
    ModerationAction.APPROVE: CommentStatus.APPROVED,
    ModerationAction.REJECT: CommentStatus.REJECTED,
}


class CommentModerationEngine:
    def __init__(self, comments: CommentRepository, clock: Callable = utcnow) -> None:
        self._comments = comments
        self._clock = clock

    async def submit(
        self,
        post_id: str,
        author: str,
        content: str,
        caller: Principal,
        email: Optional[str] = None,
        parent_id: Optional[str] = None,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Comment:
        if not post_id or not post_id.strip():
            raise ValidationError("postId is required.")
        validate_max_length("postId", post_id.strip(), POST_ID_MAX_LENGTH)
        validate_max_length("parentId", parent_id, PARENT_ID_MAX_LENGTH)
        validate_comment(author, content, email)

        status = (
            CommentStatus.APPROVED
            if caller.can(Capability.MODERATE_COMMENTS)
            else CommentStatus.PENDING
        )
        comment = Comment(
            post_id=post_id.strip(),
            author=sanitize_input(author.strip()),
            content=sanitize_input(content.strip()),
            email=email.strip() if email else None,
            parent_id=parent_id or None,
            status=status.value,
            created_at=self._clock(),
            ip=ip[:IP_MAX_LENGTH] if ip else None,
            user_agent=user_agent[:USER_AGENT_MAX_LENGTH] if user_agent else None,
        )
        comment = await self._comments.insert(comment)
        await self._comments.commit()
        logger.info(f"Comment {comment.id} submitted on post {comment.post_id} | status: {comment.status}")
        return comment

    async def list_for_post(self, post_id: str, caller: Principal) -> List[Comment]:
        if not post_id or not post_id.strip():
            raise ValidationError("postId is required.")
        include_pending = caller.can(Capability.VIEW_PENDING_COMMENTS)
        return await self._comments.list_by_post(post_id.strip(), include_pending=include_pending)

    async def moderate(self, comment_id: str, action: ModerationAction, caller: Principal) -> Comment:
        """
        Applies `action` and returns the comment as it stands afterwards (for
        delete, as it was just before removal). A second delete of the same
        id raises NotFound.
        """
        if not caller.can(Capability.MODERATE_COMMENTS):
            raise Forbidden("Only administrators can moderate comments.")

        action = ModerationAction(action)
        comment = await self._comments.get(comment_id)
        if comment is None:
            raise NotFound("Comment not found.")

        if action is ModerationAction.DELETE:
            await self._comments.delete(comment_id)
            await self._comments.commit()
            logger.info(f"Comment {comment_id} deleted by {caller.username or caller.subject_id}")
            return comment

        target = _ACTION_TARGETS[action]
        if comment.status == target.value:
            return comment
        if comment.status != CommentStatus.PENDING.value:
            raise Conflict(f"Cannot {action.value} a comment that is already {comment.status}.")

        comment = await self._comments.update_status(comment_id, target)
        await self._comments.commit()
        logger.info(f"Comment {comment_id} {target.value} by {caller.username or caller.subject_id}")
        return comment

    async def list_all(self, caller: Principal) -> List[Comment]:
        """Every comment on every post, newest first. Admin only."""
        if not caller.can(Capability.VIEW_PENDING_COMMENTS):
            raise Forbidden("Only administrators can list all comments.")
        return await self._comments.list_all()

    async def stats(self, caller: Principal) -> Dict[str, int]:
        if not caller.can(Capability.VIEW_PENDING_COMMENTS):
            raise Forbidden("Only administrators can view comment statistics.")
        counts = await self._comments.count_by_status()
        stats = {status.value: counts.get(status.value, 0) for status in CommentStatus}
        stats["total"] = sum(stats.values())
        return stats
