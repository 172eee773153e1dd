import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.core.errors import ScoringError
from app.services.analytics_service import AnalyticsService
from app.services.entitlement_service import EntitlementService
from app.services.post_service import PostService
from app.services.scoring_client import ScoringClient

logger = logging.getLogger(__name__)


class RatingService:
    """AI rating of a post, gated by the user's monthly entitlement"""

    def __init__(
        self,
        entitlements: Optional[EntitlementService] = None,
        posts: Optional[PostService] = None,
        scorer: Optional[ScoringClient] = None,
    ):
        self.analytics = AnalyticsService()
        self.entitlements = entitlements or EntitlementService()
        self.posts = posts or PostService()
        self.scorer = scorer or ScoringClient()
        self.logger = logging.getLogger(__name__)

    async def rate_post(self, db: Session, user_id: str, post_id: str) -> dict:
        """
        Check entitlement, score the post, then consume one rating.
        A failed scoring call consumes nothing.
        """
        self.logger.info(f"rate_post: Entry - user: {user_id}, post: {post_id}")

        post = self.posts.get_post(db, user_id, post_id)
        content = f"{post.title}\n\n{post.body}".strip()
        if not content:
            raise ValueError("Post is empty")

        self.entitlements.require_entitlement(db, user_id)

        try:
            result = await self.scorer.score(user_id, content)
        except ScoringError as e:
            self.analytics.log_failure(
                action='rate_post',
                error=e.message,
                user_id=user_id,
                parameters={'post_id': post_id}
            )
            raise

        usage = self.entitlements.consume(db, user_id)
        post = self.posts.record_rating(db, user_id, post_id, result.rating, result.feedback)

        entitlement = self.entitlements.check_entitlement(db, user_id)
        self.analytics.log_success(
            action='rate_post',
            user_id=user_id,
            parameters={'post_id': post_id, 'rating': result.rating, 'count': usage.ratings_used}
        )
        self.logger.info(f"rate_post: Success - post: {post_id}, rating: {result.rating}, used: {usage.ratings_used}")
        return {
            'post_id': post.id,
            'rating': post.rating,
            'feedback': post.feedback,
            'usage': {
                'used': entitlement.used,
                'limit': entitlement.limit,
                'remaining': entitlement.remaining,
                'allowed': entitlement.allowed,
            },
        }
