"""
Seven-day forward view of scheduled posts plus an overdue bucket.

Days are compared in the viewer's time zone. Overdue covers every scheduled
post before the start of tomorrow, so posts due earlier today are overdue
even if their time has not passed yet. Overdue is recomputed on every read
and never stored.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.post import PostStatus
from app.services.post_service import PostService, post_to_dict

logger = logging.getLogger(__name__)

WINDOW_DAYS = 7


@dataclass
class ScheduleBucket:
    day: date
    is_tomorrow: bool
    posts: list = field(default_factory=list)


@dataclass
class ScheduleCalendar:
    today: date
    timezone: str
    overdue: list
    buckets: list[ScheduleBucket]

    def to_dict(self, tz: ZoneInfo) -> dict:
        def entry(post):
            data = post_to_dict(post)
            data['local_time'] = to_local(post.scheduled_at, tz).strftime('%H:%M')
            return data

        return {
            'today': self.today.isoformat(),
            'timezone': self.timezone,
            'overdue': [entry(post) for post in self.overdue],
            'buckets': [
                {
                    'day': bucket.day.isoformat(),
                    'is_tomorrow': bucket.is_tomorrow,
                    'posts': [entry(post) for post in bucket.posts],
                }
                for bucket in self.buckets
            ],
        }


def resolve_timezone(tz_name: Optional[str]) -> ZoneInfo:
    """IANA zone for the viewer; unknown names raise ValueError"""
    name = tz_name or settings.default_timezone
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown time zone: {name}") from e


def to_local(instant: datetime, tz: ZoneInfo) -> datetime:
    """Stored timestamps are naive UTC"""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(tz)


def build_calendar(posts: Iterable, now: datetime, tz: ZoneInfo) -> ScheduleCalendar:
    today = to_local(now, tz).date()
    tomorrow = today + timedelta(days=1)

    scheduled = sorted(
        (post for post in posts if post.status == PostStatus.SCHEDULED and post.scheduled_at is not None),
        key=lambda post: post.scheduled_at,
    )

    overdue = []
    by_day: dict[date, list] = {}
    for post in scheduled:
        local_day = to_local(post.scheduled_at, tz).date()
        if local_day < tomorrow:
            overdue.append(post)
        else:
            by_day.setdefault(local_day, []).append(post)

    buckets = []
    for offset in range(1, WINDOW_DAYS + 1):
        day = today + timedelta(days=offset)
        buckets.append(ScheduleBucket(day=day, is_tomorrow=offset == 1, posts=by_day.get(day, [])))

    return ScheduleCalendar(today=today, timezone=tz.key, overdue=overdue, buckets=buckets)


class SchedulingCalendarService:
    def __init__(self, post_service: Optional[PostService] = None):
        self.posts = post_service or PostService()
        self.logger = logging.getLogger(__name__)

    def get_calendar(
        self,
        db: Session,
        user_id: str,
        tz_name: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> dict:
        self.logger.info(f"get_calendar: Entry - user: {user_id}, tz: {tz_name}")
        tz = resolve_timezone(tz_name)
        calendar = build_calendar(self.posts.list_scheduled_posts(db, user_id), now or datetime.utcnow(), tz)
        self.logger.info(
            f"get_calendar: Success - user: {user_id}, overdue: {len(calendar.overdue)}, "
            f"upcoming: {sum(len(bucket.posts) for bucket in calendar.buckets)}"
        )
        return calendar.to_dict(tz)
