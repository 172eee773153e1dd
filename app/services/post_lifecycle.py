"""
Post status state machine.

    draft      --schedule(date)-->  scheduled   (date strictly after now)
    draft      --publish-------->   published
    scheduled  --publish-------->   published   (clears scheduled_at)
    scheduled  --unschedule----->   draft       (clears scheduled_at)
    published  --revert--------->   draft

Edits never change status and deletion is handled by the store. "Overdue"
is not a state: a scheduled post whose time has passed stays scheduled.
"""

import enum
from datetime import datetime
from typing import Optional

from app.core.errors import InvalidTransition
from app.models.post import PostStatus


class PostEvent(str, enum.Enum):
    SCHEDULE = "schedule"
    PUBLISH = "publish"
    UNSCHEDULE = "unschedule"
    REVERT = "revert"


TRANSITIONS = {
    (PostStatus.DRAFT, PostEvent.SCHEDULE): PostStatus.SCHEDULED,
    (PostStatus.DRAFT, PostEvent.PUBLISH): PostStatus.PUBLISHED,
    (PostStatus.SCHEDULED, PostEvent.PUBLISH): PostStatus.PUBLISHED,
    (PostStatus.SCHEDULED, PostEvent.UNSCHEDULE): PostStatus.DRAFT,
    (PostStatus.PUBLISHED, PostEvent.REVERT): PostStatus.DRAFT,
}


def allowed_events(status: PostStatus) -> list[PostEvent]:
    return [event for (source, event) in TRANSITIONS if source == status]


def next_status(
    status: PostStatus,
    event: PostEvent,
    now: datetime,
    scheduled_at: Optional[datetime] = None,
) -> tuple[PostStatus, Optional[datetime]]:
    """
    Resolve a transition without touching storage.

    Returns (new_status, new_scheduled_at). Raises InvalidTransition when the
    event is not allowed from status or its guard fails.
    """
    target = TRANSITIONS.get((status, event))
    if target is None:
        raise InvalidTransition(status.value, event.value)

    if event == PostEvent.SCHEDULE:
        if scheduled_at is None:
            raise InvalidTransition(status.value, event.value, "a scheduled date is required")
        if scheduled_at <= now:
            raise InvalidTransition(status.value, event.value, "scheduled date must be in the future")
        return target, scheduled_at

    return target, None


def apply_transition(post, event: PostEvent, now: datetime, scheduled_at: Optional[datetime] = None):
    """Apply a transition to a Post in place. Nothing is mutated when it is rejected."""
    status, new_scheduled_at = next_status(post.status, event, now, scheduled_at)
    post.status = status
    post.scheduled_at = new_scheduled_at
    post.updated_at = now
    return post
