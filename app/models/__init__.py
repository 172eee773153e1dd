from app.models.subscription import Subscription, SubscriptionStatus
from app.models.subscription_history import SubscriptionHistory
from app.models.usage_record import UsageRecord
from app.models.post import Post, PostStatus
from app.models.hashtag_collection import HashtagCollection

__all__ = ["Subscription", "SubscriptionStatus", "SubscriptionHistory", "UsageRecord", "Post", "PostStatus", "HashtagCollection"]
