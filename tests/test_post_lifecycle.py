"""
Tests for the post status state machine
"""

from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from app.core.errors import InvalidTransition
from app.models.post import PostStatus
from app.services.post_lifecycle import PostEvent, allowed_events, apply_transition, next_status

NOW = datetime(2025, 3, 14, 12, 0, 0)


def make_post(status, scheduled_at=None):
    return SimpleNamespace(status=status, scheduled_at=scheduled_at, updated_at=None)


class TestNextStatus:

    @pytest.mark.parametrize("status,event,expected", [
        (PostStatus.DRAFT, PostEvent.PUBLISH, PostStatus.PUBLISHED),
        (PostStatus.SCHEDULED, PostEvent.PUBLISH, PostStatus.PUBLISHED),
        (PostStatus.SCHEDULED, PostEvent.UNSCHEDULE, PostStatus.DRAFT),
        (PostStatus.PUBLISHED, PostEvent.REVERT, PostStatus.DRAFT),
    ])
    def test_allowed_transitions_clear_schedule(self, status, event, expected):
        assert next_status(status, event, NOW) == (expected, None)

    def test_schedule_draft(self):
        target = NOW + timedelta(days=1)
        assert next_status(PostStatus.DRAFT, PostEvent.SCHEDULE, NOW, target) == (PostStatus.SCHEDULED, target)

    def test_schedule_one_second_ahead_accepted(self):
        target = NOW + timedelta(seconds=1)
        assert next_status(PostStatus.DRAFT, PostEvent.SCHEDULE, NOW, target)[0] == PostStatus.SCHEDULED

    @pytest.mark.parametrize("target", [NOW, NOW - timedelta(minutes=5)])
    def test_schedule_not_in_future_rejected(self, target):
        with pytest.raises(InvalidTransition):
            next_status(PostStatus.DRAFT, PostEvent.SCHEDULE, NOW, target)

    def test_schedule_requires_date(self):
        with pytest.raises(InvalidTransition):
            next_status(PostStatus.DRAFT, PostEvent.SCHEDULE, NOW, None)

    @pytest.mark.parametrize("status,event", [
        (PostStatus.SCHEDULED, PostEvent.SCHEDULE),
        (PostStatus.PUBLISHED, PostEvent.SCHEDULE),
        (PostStatus.PUBLISHED, PostEvent.PUBLISH),
        (PostStatus.DRAFT, PostEvent.UNSCHEDULE),
        (PostStatus.DRAFT, PostEvent.REVERT),
        (PostStatus.SCHEDULED, PostEvent.REVERT),
    ])
    def test_disallowed_pairs(self, status, event):
        with pytest.raises(InvalidTransition) as exc_info:
            next_status(status, event, NOW, NOW + timedelta(days=1))
        assert exc_info.value.from_status == status.value
        assert exc_info.value.status_code == 409

    def test_allowed_events(self):
        assert set(allowed_events(PostStatus.DRAFT)) == {PostEvent.SCHEDULE, PostEvent.PUBLISH}
        assert set(allowed_events(PostStatus.PUBLISHED)) == {PostEvent.REVERT}


class TestApplyTransition:

    def test_rejected_transition_leaves_post_untouched(self):
        scheduled_at = NOW + timedelta(hours=2)
        post = make_post(PostStatus.SCHEDULED, scheduled_at)

        with pytest.raises(InvalidTransition):
            apply_transition(post, PostEvent.SCHEDULE, NOW, NOW + timedelta(days=3))

        assert post.status == PostStatus.SCHEDULED
        assert post.scheduled_at == scheduled_at
        assert post.updated_at is None

    def test_schedule_unschedule_schedule(self):
        post = make_post(PostStatus.DRAFT)
        first = NOW + timedelta(days=1)
        second = NOW + timedelta(days=2)

        apply_transition(post, PostEvent.SCHEDULE, NOW, first)
        apply_transition(post, PostEvent.UNSCHEDULE, NOW)
        assert post.status == PostStatus.DRAFT
        assert post.scheduled_at is None

        apply_transition(post, PostEvent.SCHEDULE, NOW, second)
        assert post.status == PostStatus.SCHEDULED
        assert post.scheduled_at == second
        assert post.updated_at == NOW
