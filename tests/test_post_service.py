"""
Tests for the post store
"""

from datetime import datetime, timedelta

import pytest

from app.core.errors import InvalidTransition, NotFound
from app.models.post import Post, PostStatus


class TestPostCrud:

    def test_create_is_draft(self, db_session, post_service):
        post = post_service.create_post(db_session, "u1", title="Hello", body="World", tags=[" a ", "b", "a", ""])

        assert post.status == PostStatus.DRAFT
        assert post.scheduled_at is None
        assert post.ai_rated is False
        assert post.tags == ["a", "b"]

    def test_get_post_scoped_to_owner(self, db_session, post_service):
        post = post_service.create_post(db_session, "u1", title="Mine")

        assert post_service.get_post(db_session, "u1", post.id).title == "Mine"
        with pytest.raises(NotFound):
            post_service.get_post(db_session, "u2", post.id)

    def test_list_posts_most_recent_first(self, db_session, post_service):
        older = post_service.create_post(db_session, "u1", title="older")
        newer = post_service.create_post(db_session, "u1", title="newer")
        older.updated_at = datetime(2020, 1, 1)
        db_session.commit()

        assert [post.id for post in post_service.list_posts(db_session, "u1")] == [newer.id, older.id]

    def test_list_posts_by_status(self, db_session, post_service):
        post_service.create_post(db_session, "u1", title="draft")
        published = post_service.create_post(db_session, "u1", title="pub")
        post_service.publish_post(db_session, "u1", published.id)

        result = post_service.list_posts(db_session, "u1", PostStatus.PUBLISHED)
        assert [post.id for post in result] == [published.id]

    def test_delete(self, db_session, post_service):
        post = post_service.create_post(db_session, "u1")
        post_service.delete_post(db_session, "u1", post.id)

        assert db_session.query(Post).count() == 0
        with pytest.raises(NotFound):
            post_service.delete_post(db_session, "u1", post.id)

    def test_duplicate(self, db_session, post_service):
        original = post_service.create_post(db_session, "u1", title="Launch", body="text", tags=["x"])
        post_service.record_rating(db_session, "u1", original.id, 8, "good")
        post_service.schedule_post(db_session, "u1", original.id, datetime.utcnow() + timedelta(days=1))

        copy = post_service.duplicate_post(db_session, "u1", original.id)
        assert copy.id != original.id
        assert copy.title == "Copy of Launch"
        assert copy.body == "text"
        assert copy.tags == ["x"]
        assert copy.status == PostStatus.DRAFT
        assert copy.scheduled_at is None
        assert copy.ai_rated is False

    def test_user_tags(self, db_session, post_service):
        post_service.create_post(db_session, "u1", tags=["b", "a"])
        post_service.create_post(db_session, "u1", tags=["c", "a"])
        post_service.create_post(db_session, "u2", tags=["z"])

        assert post_service.get_user_tags(db_session, "u1") == ["a", "b", "c"]


class TestEditPost:

    def test_edit_keeps_status(self, db_session, post_service):
        post = post_service.create_post(db_session, "u1", title="before")
        post, changed = post_service.edit_post(db_session, "u1", post.id, title="after")

        assert changed == ["title"]
        assert post.title == "after"
        assert post.status == PostStatus.DRAFT

    def test_edit_scheduled_post_keeps_schedule(self, db_session, post_service):
        post = post_service.create_post(db_session, "u1")
        when = datetime.utcnow() + timedelta(days=2)
        post_service.schedule_post(db_session, "u1", post.id, when)

        post, _ = post_service.edit_post(db_session, "u1", post.id, body="new body")
        assert post.status == PostStatus.SCHEDULED
        assert post.scheduled_at == when

    def test_unchanged_fields_are_not_written(self, db_session, post_service):
        post = post_service.create_post(db_session, "u1", title="same", tags=["a"])
        stamp = post.updated_at

        post, changed = post_service.edit_post(db_session, "u1", post.id, title="same", tags=["a", " a "])
        assert changed == []
        assert post.updated_at == stamp

    def test_only_differing_fields_reported(self, db_session, post_service):
        post = post_service.create_post(db_session, "u1", title="t", body="b")
        _, changed = post_service.edit_post(db_session, "u1", post.id, title="t", body="b2")
        assert changed == ["body"]

    def test_status_not_editable(self, db_session, post_service):
        post = post_service.create_post(db_session, "u1")
        with pytest.raises(ValueError):
            post_service.edit_post(db_session, "u1", post.id, status="published")


class TestTransitions:

    def test_schedule_in_past_rejected(self, db_session, post_service, now):
        post = post_service.create_post(db_session, "u1")

        with pytest.raises(InvalidTransition):
            post_service.schedule_post(db_session, "u1", post.id, now, now=now)

        db_session.refresh(post)
        assert post.status == PostStatus.DRAFT

    def test_reschedule_requires_unschedule(self, db_session, post_service, now):
        post = post_service.create_post(db_session, "u1")
        post_service.schedule_post(db_session, "u1", post.id, now + timedelta(days=1), now=now)

        with pytest.raises(InvalidTransition):
            post_service.schedule_post(db_session, "u1", post.id, now + timedelta(days=2), now=now)

        post_service.unschedule_post(db_session, "u1", post.id, now=now)
        post = post_service.schedule_post(db_session, "u1", post.id, now + timedelta(days=2), now=now)
        assert post.scheduled_at == now + timedelta(days=2)

    def test_publish_clears_schedule(self, db_session, post_service, now):
        post = post_service.create_post(db_session, "u1")
        post_service.schedule_post(db_session, "u1", post.id, now + timedelta(hours=1), now=now)

        post = post_service.publish_post(db_session, "u1", post.id, now=now)
        assert post.status == PostStatus.PUBLISHED
        assert post.scheduled_at is None

    def test_revert_published(self, db_session, post_service):
        post = post_service.create_post(db_session, "u1")
        post_service.publish_post(db_session, "u1", post.id)

        assert post_service.revert_post(db_session, "u1", post.id).status == PostStatus.DRAFT
        with pytest.raises(InvalidTransition):
            post_service.revert_post(db_session, "u1", post.id)


class TestPostListeners:

    def test_listener_gets_full_list_after_writes(self, db_session, post_service):
        snapshots = []
        unsubscribe = post_service.subscribe_to_posts("u1", snapshots.append)

        first = post_service.create_post(db_session, "u1", title="one")
        post_service.create_post(db_session, "u1", title="two")
        post_service.publish_post(db_session, "u1", first.id)

        assert len(snapshots) == 3
        assert {post["title"] for post in snapshots[-1]} == {"one", "two"}

        unsubscribe()
        unsubscribe()
        post_service.create_post(db_session, "u1", title="three")
        assert len(snapshots) == 3

    def test_rejected_transition_does_not_notify(self, db_session, post_service):
        post = post_service.create_post(db_session, "u1")
        snapshots = []
        post_service.subscribe_to_posts("u1", snapshots.append)

        with pytest.raises(InvalidTransition):
            post_service.unschedule_post(db_session, "u1", post.id)
        assert snapshots == []
