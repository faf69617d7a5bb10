"""
Comment editing.

Adding a comment is part of the report lifecycle (``report_lifecycle.add_comment``).
This module covers the follow-up edits: a user comment may be edited by its
author and deleted by its author or an admin. System and AI comments are
append-only.
"""

import logging
from datetime import UTC, datetime

from nippo.core.exceptions import AuthorizationError, ValidationError
from nippo.models.auth import Role
from nippo.models.report import Comment, CommentType
from nippo.services import audit_events as ev
from nippo.services.auth_guard import require_role
from nippo.services.report_lifecycle import COMMENT_MAX, clean_text

logger = logging.getLogger(__name__)


def _load_comment(store, actor, comment_id):
    """Load a comment whose report lives in the actor's org and is not deleted."""
    comment = store.get_comment(comment_id, actor.org_id)
    if comment.type is not CommentType.USER:
        raise ValidationError(
            f"{comment.type.value} comments cannot be changed",
            details={"type": comment.type.value},
        )
    return comment


def update_comment(store, actor, comment_id, content) -> Comment:
    require_role(actor, Role.USER, actor.org_id)
    comment = _load_comment(store, actor, comment_id)
    if comment.author_id != actor.id:
        raise AuthorizationError("Only the comment author may edit it")

    comment.content = clean_text(content, "content", COMMENT_MAX)
    comment.updated_at = datetime.now(UTC)
    store.flush()
    store.record_event(actor.id, actor.org_id, ev.CommentUpdated(
        report_id=comment.report_id, comment_id=comment.id,
    ))
    logger.info("Comment %s updated", comment.id,
                extra={"org_id": actor.org_id, "actor_id": actor.id, "report_id": comment.report_id})
    return comment


def delete_comment(store, actor, comment_id) -> None:
    require_role(actor, Role.USER, actor.org_id)
    comment = _load_comment(store, actor, comment_id)
    if comment.author_id != actor.id and not actor.is_admin:
        raise AuthorizationError("Only the comment author or an admin may delete it")

    report_id = comment.report_id
    store.delete(comment)
    store.flush()
    store.record_event(actor.id, actor.org_id, ev.CommentDeleted(report_id=report_id, comment_id=comment_id))
    logger.info("Comment %s deleted", comment_id,
                extra={"org_id": actor.org_id, "actor_id": actor.id, "report_id": report_id})
