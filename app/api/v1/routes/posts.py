import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.middleware import get_current_user
from app.models.post import PostStatus
from app.services.autosave import AutosaveDebouncer, get_autosave_debouncer
from app.services.post_service import PostService, post_to_dict
from app.services.rating_service import RatingService
from app.services.scheduling_calendar import SchedulingCalendarService

router = APIRouter()
logger = logging.getLogger(__name__)


def get_post_service() -> PostService:
    """Dependency to get post service instance"""
    return PostService()


def get_calendar_service() -> SchedulingCalendarService:
    """Dependency to get scheduling calendar service instance"""
    return SchedulingCalendarService()


def get_rating_service() -> RatingService:
    """Dependency to get rating service instance"""
    return RatingService()


def to_naive_utc(instant: datetime) -> datetime:
    """Stored timestamps are naive UTC"""
    if instant.tzinfo is not None:
        instant = instant.astimezone(timezone.utc).replace(tzinfo=None)
    return instant


class PostCreateRequest(BaseModel):
    title: str = ''
    body: str = ''
    tags: list[str] = []


class PostUpdateRequest(BaseModel):
    title: Optional[str] = None
    body: Optional[str] = None
    tags: Optional[list[str]] = None


class ScheduleRequest(BaseModel):
    scheduled_at: datetime


@router.get("")
async def list_posts(
    status_filter: Optional[PostStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    post_service: PostService = Depends(get_post_service)
):
    """User's posts, most recently updated first"""
    user_id = current_user['uid']
    logger.info(f"list_posts: Entry - user: {user_id}, status: {status_filter}")
    posts = post_service.list_posts(db, user_id, status_filter)
    logger.info(f"list_posts: Success - user: {user_id}, count: {len(posts)}")
    return {"posts": [post_to_dict(post) for post in posts]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_post(
    request: PostCreateRequest,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    post_service: PostService = Depends(get_post_service)
):
    user_id = current_user['uid']
    post = post_service.create_post(db, user_id, title=request.title, body=request.body, tags=request.tags)
    return post_to_dict(post)


@router.get("/tags")
async def get_tags(
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    post_service: PostService = Depends(get_post_service)
):
    """Every tag the user has used, for autocomplete"""
    return {"tags": post_service.get_user_tags(db, current_user['uid'])}


@router.get("/calendar")
async def get_calendar(
    tz: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    calendar_service: SchedulingCalendarService = Depends(get_calendar_service)
):
    """
    Overdue posts plus the next seven days of scheduled posts,
    grouped by day in the viewer's time zone.
    """
    user_id = current_user['uid']
    logger.info(f"get_calendar: Entry - user: {user_id}, tz: {tz}")

    try:
        return calendar_service.get_calendar(db, user_id, tz)
    except ValueError as e:
        logger.warning(f"get_calendar: ValueError - {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/{post_id}")
async def get_post(
    post_id: str,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    post_service: PostService = Depends(get_post_service)
):
    return post_to_dict(post_service.get_post(db, current_user['uid'], post_id))


@router.patch("/{post_id}")
async def update_post(
    post_id: str,
    request: PostUpdateRequest,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    post_service: PostService = Depends(get_post_service)
):
    """Edit title, body or tags. Unchanged fields are not written."""
    user_id = current_user['uid']
    logger.info(f"update_post: Entry - user: {user_id}, post: {post_id}")
    post, changed = post_service.edit_post(db, user_id, post_id, **request.model_dump(exclude_none=True))
    return {"post": post_to_dict(post), "changed": changed}


@router.post("/{post_id}/autosave", status_code=status.HTTP_202_ACCEPTED)
async def autosave_post(
    post_id: str,
    request: PostUpdateRequest,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    post_service: PostService = Depends(get_post_service),
    debouncer: AutosaveDebouncer = Depends(get_autosave_debouncer)
):
    """
    Queue an editor autosave. Edits arriving within the debounce window
    are merged and written once.
    """
    user_id = current_user['uid']
    # Ownership check before anything is queued
    post_service.get_post(db, user_id, post_id)
    debouncer.submit(user_id, post_id, **request.model_dump(exclude_none=True))
    return {"post_id": post_id, "pending": sorted(debouncer.pending_fields(post_id))}


@router.delete("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_post(
    post_id: str,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    post_service: PostService = Depends(get_post_service),
    debouncer: AutosaveDebouncer = Depends(get_autosave_debouncer)
):
    debouncer.cancel(post_id)
    post_service.delete_post(db, current_user['uid'], post_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{post_id}/schedule")
async def schedule_post(
    post_id: str,
    request: ScheduleRequest,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    post_service: PostService = Depends(get_post_service)
):
    """Schedule a draft for a future instant"""
    user_id = current_user['uid']
    logger.info(f"schedule_post: Entry - user: {user_id}, post: {post_id}, at: {request.scheduled_at}")
    post = post_service.schedule_post(db, user_id, post_id, to_naive_utc(request.scheduled_at))
    return post_to_dict(post)


@router.post("/{post_id}/publish")
async def publish_post(
    post_id: str,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    post_service: PostService = Depends(get_post_service)
):
    return post_to_dict(post_service.publish_post(db, current_user['uid'], post_id))


@router.post("/{post_id}/unschedule")
async def unschedule_post(
    post_id: str,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    post_service: PostService = Depends(get_post_service)
):
    return post_to_dict(post_service.unschedule_post(db, current_user['uid'], post_id))


@router.post("/{post_id}/revert")
async def revert_post(
    post_id: str,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    post_service: PostService = Depends(get_post_service)
):
    """Move a published post back to draft"""
    return post_to_dict(post_service.revert_post(db, current_user['uid'], post_id))


@router.post("/{post_id}/duplicate", status_code=status.HTTP_201_CREATED)
async def duplicate_post(
    post_id: str,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    post_service: PostService = Depends(get_post_service)
):
    return post_to_dict(post_service.duplicate_post(db, current_user['uid'], post_id))


@router.post("/{post_id}/rate")
async def rate_post(
    post_id: str,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    rating_service: RatingService = Depends(get_rating_service)
):
    """
    AI rating. Denied with 403 once the month's allowance is used;
    a failed scoring call does not count against the allowance.
    """
    user_id = current_user['uid']
    logger.info(f"rate_post: Entry - user: {user_id}, post: {post_id}")

    try:
        result = await rating_service.rate_post(db, user_id, post_id)
    except ValueError as e:
        logger.warning(f"rate_post: ValueError - {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    logger.info(f"rate_post: Success - user: {user_id}, post: {post_id}, rating: {result['rating']}")
    return result
