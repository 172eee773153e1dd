import logging
import uuid
from datetime import datetime
from typing import Callable, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import NotFound, TransientStoreError
from app.core.listeners import ListenerRegistry, Unsubscribe, get_listener_registry, posts_key
from app.models.post import Post, PostStatus
from app.services.analytics_service import AnalyticsService
from app.services.post_lifecycle import PostEvent, apply_transition

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ('title', 'body', 'tags')


def normalize_tags(tags: Optional[Iterable[str]]) -> list[str]:
    """Ordered set of non-empty, trimmed tags"""
    result = []
    for tag in tags or []:
        tag = (tag or '').strip()
        if tag and tag not in result:
            result.append(tag)
    return result


def post_to_dict(post: Post) -> dict:
    return {
        'id': post.id,
        'title': post.title,
        'body': post.body,
        'tags': list(post.tags or []),
        'status': post.status.value,
        'scheduled_at': post.scheduled_at.isoformat() if post.scheduled_at else None,
        'ai_rated': bool(post.ai_rated),
        'rating': post.rating,
        'feedback': post.feedback,
        'created_at': post.created_at.isoformat() if post.created_at else None,
        'updated_at': post.updated_at.isoformat() if post.updated_at else None,
    }


class PostService:
    def __init__(self, listeners: Optional[ListenerRegistry] = None):
        self.analytics = AnalyticsService()
        self.listeners = listeners or get_listener_registry()
        self.logger = logging.getLogger(__name__)

    def create_post(
        self,
        db: Session,
        user_id: str,
        title: str = '',
        body: str = '',
        tags: Optional[list[str]] = None,
    ) -> Post:
        """New posts always start as drafts"""
        self.logger.info(f"create_post: Entry - user: {user_id}")

        now = datetime.utcnow()
        post = Post(
            id=str(uuid.uuid4()),
            user_id=user_id,
            title=title or '',
            body=body or '',
            tags=normalize_tags(tags),
            status=PostStatus.DRAFT,
            scheduled_at=None,
            ai_rated=False,
            created_at=now,
            updated_at=now,
        )
        self._write(db, 'create_post', user_id, lambda: db.add(post))
        db.refresh(post)

        self.analytics.log_success(action='create_post', user_id=user_id, parameters={'post_id': post.id})
        self.logger.info(f"create_post: Success - user: {user_id}, post: {post.id}")
        return post

    def get_post(self, db: Session, user_id: str, post_id: str) -> Post:
        try:
            post = db.query(Post).filter(Post.id == post_id, Post.user_id == user_id).first()
        except SQLAlchemyError as e:
            self.logger.error(f"get_post: Failure - {e}")
            raise TransientStoreError("Post store unavailable") from e

        if not post:
            self.logger.info(f"get_post: Not found - user: {user_id}, post: {post_id}")
            raise NotFound(f"Post not found: {post_id}")
        return post

    def list_posts(self, db: Session, user_id: str, status: Optional[PostStatus] = None) -> list[Post]:
        """User's posts, most recently updated first"""
        try:
            query = db.query(Post).filter(Post.user_id == user_id)
            if status is not None:
                query = query.filter(Post.status == status)
            return query.order_by(Post.updated_at.desc()).all()
        except SQLAlchemyError as e:
            self.logger.error(f"list_posts: Failure - {e}")
            raise TransientStoreError("Post store unavailable") from e

    def list_scheduled_posts(self, db: Session, user_id: str) -> list[Post]:
        try:
            return db.query(Post).filter(
                Post.user_id == user_id,
                Post.status == PostStatus.SCHEDULED,
                Post.scheduled_at.isnot(None),
            ).order_by(Post.scheduled_at.asc()).all()
        except SQLAlchemyError as e:
            self.logger.error(f"list_scheduled_posts: Failure - {e}")
            raise TransientStoreError("Post store unavailable") from e

    def edit_post(self, db: Session, user_id: str, post_id: str, **changes) -> tuple[Post, list[str]]:
        """
        Apply title/body/tags edits. Only fields that differ from the stored
        snapshot are written; when nothing differs no write happens.
        Status is never changed by an edit.

        Returns (post, changed_fields).
        """
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Fields not editable: {', '.join(sorted(unknown))}")

        post = self.get_post(db, user_id, post_id)

        updates = {}
        for field, value in changes.items():
            if value is None:
                continue
            if field == 'tags':
                value = normalize_tags(value)
                if value != list(post.tags or []):
                    updates[field] = value
            elif value != getattr(post, field):
                updates[field] = value

        if not updates:
            self.logger.debug(f"edit_post: No changes - post: {post_id}")
            return post, []

        def apply():
            for field, value in updates.items():
                setattr(post, field, value)
            post.updated_at = datetime.utcnow()

        self._write(db, 'edit_post', user_id, apply)
        db.refresh(post)
        self.logger.info(f"edit_post: Success - post: {post_id}, fields: {sorted(updates)}")
        return post, sorted(updates)

    def schedule_post(
        self,
        db: Session,
        user_id: str,
        post_id: str,
        scheduled_at: datetime,
        now: Optional[datetime] = None,
    ) -> Post:
        return self._transition(db, user_id, post_id, PostEvent.SCHEDULE, now, scheduled_at)

    def publish_post(self, db: Session, user_id: str, post_id: str, now: Optional[datetime] = None) -> Post:
        return self._transition(db, user_id, post_id, PostEvent.PUBLISH, now)

    def unschedule_post(self, db: Session, user_id: str, post_id: str, now: Optional[datetime] = None) -> Post:
        return self._transition(db, user_id, post_id, PostEvent.UNSCHEDULE, now)

    def revert_post(self, db: Session, user_id: str, post_id: str, now: Optional[datetime] = None) -> Post:
        return self._transition(db, user_id, post_id, PostEvent.REVERT, now)

    def delete_post(self, db: Session, user_id: str, post_id: str):
        self.logger.info(f"delete_post: Entry - user: {user_id}, post: {post_id}")
        post = self.get_post(db, user_id, post_id)
        self._write(db, 'delete_post', user_id, lambda: db.delete(post))
        self.analytics.log_success(action='delete_post', user_id=user_id, parameters={'post_id': post_id})
        self.logger.info(f"delete_post: Success - post: {post_id}")

    def duplicate_post(self, db: Session, user_id: str, post_id: str) -> Post:
        """Copy title/body/tags into a fresh, unrated draft"""
        original = self.get_post(db, user_id, post_id)
        return self.create_post(
            db,
            user_id,
            title=f"Copy of {original.title}",
            body=original.body,
            tags=list(original.tags or []),
        )

    def record_rating(self, db: Session, user_id: str, post_id: str, rating: int, feedback: str) -> Post:
        post = self.get_post(db, user_id, post_id)

        def apply():
            post.rating = rating
            post.feedback = feedback
            post.ai_rated = True
            post.updated_at = datetime.utcnow()

        self._write(db, 'record_rating', user_id, apply)
        db.refresh(post)
        return post

    def get_user_tags(self, db: Session, user_id: str) -> list[str]:
        """Sorted union of tags across the user's posts, for autocomplete"""
        tags = set()
        for post in self.list_posts(db, user_id):
            tags.update(post.tags or [])
        return sorted(tags)

    def subscribe_to_posts(self, user_id: str, callback: Callable[[list[dict]], None]) -> Unsubscribe:
        """Push the user's full post list to callback after every write"""
        return self.listeners.subscribe(posts_key(user_id), callback)

    def _transition(
        self,
        db: Session,
        user_id: str,
        post_id: str,
        event: PostEvent,
        now: Optional[datetime],
        scheduled_at: Optional[datetime] = None,
    ) -> Post:
        self.logger.info(f"{event.value}_post: Entry - user: {user_id}, post: {post_id}")
        now = now or datetime.utcnow()
        post = self.get_post(db, user_id, post_id)
        from_status = post.status

        # Raises InvalidTransition before anything is written
        self._write(db, f'{event.value}_post', user_id, lambda: apply_transition(post, event, now, scheduled_at))
        db.refresh(post)

        self.analytics.log_success(
            action=f'{event.value}_post',
            user_id=user_id,
            parameters={'post_id': post_id, 'from': from_status.value, 'to': post.status.value}
        )
        self.logger.info(
            f"{event.value}_post: Success - post: {post_id}, {from_status.value} -> {post.status.value}")
        return post

    def _write(self, db: Session, action: str, user_id: str, mutate: Callable[[], object]):
        """Run mutate, commit, and push the new post list to listeners"""
        try:
            mutate()
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            self.analytics.log_failure(action=action, error=str(e), user_id=user_id)
            self.logger.error(f"{action}: Failure - {e}")
            raise TransientStoreError("Post store unavailable") from e
        self._notify(db, user_id)

    def _notify(self, db: Session, user_id: str):
        key = posts_key(user_id)
        if self.listeners.listener_count(key) == 0:
            return
        self.listeners.notify(key, [post_to_dict(post) for post in self.list_posts(db, user_id)])
