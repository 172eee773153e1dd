"""
Tests for the seven-day scheduling calendar
"""

from datetime import date, datetime, timedelta
from types import SimpleNamespace
from zoneinfo import ZoneInfo

import pytest

from app.models.post import PostStatus
from app.services.scheduling_calendar import (SchedulingCalendarService, build_calendar,
                                              resolve_timezone)

UTC = ZoneInfo("UTC")


def scheduled(when, status=PostStatus.SCHEDULED, ident=None):
    return SimpleNamespace(id=ident or when.isoformat(), status=status, scheduled_at=when)


class TestBuildCalendar:

    def test_seven_buckets_first_is_tomorrow(self):
        now = datetime(2025, 3, 14, 10, 0)
        calendar = build_calendar([], now, UTC)

        assert calendar.today == date(2025, 3, 14)
        assert len(calendar.buckets) == 7
        assert calendar.buckets[0].day == date(2025, 3, 15)
        assert calendar.buckets[0].is_tomorrow is True
        assert not any(bucket.is_tomorrow for bucket in calendar.buckets[1:])
        assert calendar.buckets[-1].day == date(2025, 3, 21)
        assert all(bucket.posts == [] for bucket in calendar.buckets)

    def test_tomorrow_versus_overdue(self):
        """now+25h lands in tomorrow's bucket, now+3h is overdue, never both"""
        today0 = datetime(2025, 3, 14, 0, 0)
        now = today0 + timedelta(hours=1)
        later_today = scheduled(today0 + timedelta(hours=3))
        tomorrow = scheduled(today0 + timedelta(hours=25))

        calendar = build_calendar([tomorrow, later_today], now, UTC)

        assert calendar.overdue == [later_today]
        assert calendar.buckets[0].posts == [tomorrow]
        assert later_today not in calendar.buckets[0].posts
        assert tomorrow not in calendar.overdue

    def test_past_days_are_overdue_sorted(self):
        now = datetime(2025, 3, 14, 12, 0)
        week_ago = scheduled(now - timedelta(days=7))
        yesterday = scheduled(now - timedelta(days=1))

        calendar = build_calendar([yesterday, week_ago], now, UTC)
        assert calendar.overdue == [week_ago, yesterday]

    def test_posts_beyond_window_omitted(self):
        now = datetime(2025, 3, 14, 12, 0)
        day_seven = scheduled(datetime(2025, 3, 21, 23, 0))
        day_eight = scheduled(datetime(2025, 3, 22, 0, 30))

        calendar = build_calendar([day_seven, day_eight], now, UTC)
        assert calendar.buckets[-1].posts == [day_seven]
        assert day_eight not in calendar.overdue

    def test_same_day_sorted_by_time(self):
        now = datetime(2025, 3, 14, 12, 0)
        evening = scheduled(datetime(2025, 3, 16, 20, 0))
        morning = scheduled(datetime(2025, 3, 16, 8, 0))

        calendar = build_calendar([evening, morning], now, UTC)
        assert calendar.buckets[1].posts == [morning, evening]

    def test_only_scheduled_posts(self):
        now = datetime(2025, 3, 14, 12, 0)
        draft = scheduled(datetime(2025, 3, 15, 9, 0), status=PostStatus.DRAFT)
        no_date = SimpleNamespace(id="x", status=PostStatus.SCHEDULED, scheduled_at=None)

        calendar = build_calendar([draft, no_date], now, UTC)
        assert calendar.overdue == []
        assert all(bucket.posts == [] for bucket in calendar.buckets)

    def test_days_follow_viewer_zone(self):
        """23:30 UTC on the 14th is already the 15th in Tokyo"""
        tokyo = ZoneInfo("Asia/Tokyo")
        now = datetime(2025, 3, 14, 1, 0)  # 10:00 on the 14th in Tokyo
        late_utc = scheduled(datetime(2025, 3, 14, 23, 30))

        in_utc = build_calendar([late_utc], now, UTC)
        in_tokyo = build_calendar([late_utc], now, tokyo)

        assert in_utc.overdue == [late_utc]
        assert in_tokyo.overdue == []
        assert in_tokyo.buckets[0].day == date(2025, 3, 15)
        assert in_tokyo.buckets[0].posts == [late_utc]


class TestResolveTimezone:

    def test_default_zone(self):
        assert resolve_timezone(None).key == "UTC"

    def test_unknown_zone(self):
        with pytest.raises(ValueError):
            resolve_timezone("Mars/Olympus_Mons")


class TestCalendarService:

    def test_get_calendar_dict(self, db_session, post_service):
        now = datetime(2025, 3, 14, 12, 0)
        post = post_service.create_post(db_session, "u1", title="tomorrow")
        post_service.schedule_post(db_session, "u1", post.id, datetime(2025, 3, 15, 9, 30), now=now)
        post_service.create_post(db_session, "u1", title="draft")

        result = SchedulingCalendarService(post_service).get_calendar(db_session, "u1", "America/New_York", now=now)

        assert result["timezone"] == "America/New_York"
        assert result["today"] == "2025-03-14"
        assert result["overdue"] == []
        assert result["buckets"][0]["day"] == "2025-03-15"
        assert result["buckets"][0]["is_tomorrow"] is True
        entry = result["buckets"][0]["posts"][0]
        assert entry["title"] == "tomorrow"
        assert entry["local_time"] == "05:30"
