"""
Entitlement gate for metered actions (AI ratings).

check_entitlement and consume are two separate calls. Two concurrent ratings
by the same user can both pass the check before either consumes, so the
month's count may exceed the limit by (callers - 1). try_consume closes that
gap with a conditional UPDATE serialised by a per-(user, month) Redis lock.
"""

import logging
from datetime import datetime
from typing import Optional

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.cache import get_cache, usage_lock_key
from app.core.errors import QuotaExceeded, TransientStoreError
from app.models.usage_record import UsageRecord
from app.services.analytics_service import AnalyticsService
from app.services.plan_catalog import is_unlimited, plan_for, resolve_limit
from app.services.subscription_service import SubscriptionService
from app.services.usage_ledger import UsageLedger, month_key

logger = logging.getLogger(__name__)


class Entitlement(BaseModel):
    allowed: bool
    used: int
    limit: Optional[int]  # None = unlimited
    plan_tier: str

    @property
    def unlimited(self) -> bool:
        return self.limit is None

    @property
    def remaining(self) -> Optional[int]:
        if self.limit is None:
            return None
        return max(0, self.limit - self.used)


class EntitlementService:
    def __init__(
        self,
        subscription_service: Optional[SubscriptionService] = None,
        ledger: Optional[UsageLedger] = None,
    ):
        self.analytics = AnalyticsService()
        self.subscriptions = subscription_service or SubscriptionService()
        self.ledger = ledger or UsageLedger()
        self.logger = logging.getLogger(__name__)

    def check_entitlement(self, db: Session, user_id: str, now: Optional[datetime] = None) -> Entitlement:
        """
        Decide whether the user may perform one more AI rating this month.
        Creates the default free subscription if the user has none.
        """
        self.logger.info(f"check_entitlement: Entry - user: {user_id}")

        subscription = self.subscriptions.get_or_create_subscription(db, user_id)
        plan = plan_for(subscription.plan_tier)
        limit = resolve_limit(subscription, plan)

        try:
            record = self.ledger.current_usage(db, user_id, now)
        except SQLAlchemyError as e:
            self.logger.error(f"check_entitlement: Failure - {e}")
            raise TransientStoreError("Usage store unavailable") from e
        used = record.ratings_used if record else 0

        if is_unlimited(limit):
            entitlement = Entitlement(allowed=True, used=used, limit=None, plan_tier=plan.id)
        else:
            entitlement = Entitlement(allowed=used < limit, used=used, limit=limit, plan_tier=plan.id)

        self.logger.info(
            f"check_entitlement: Success - user: {user_id}, plan: {plan.id}, "
            f"used: {used}, limit: {entitlement.limit}, allowed: {entitlement.allowed}"
        )
        return entitlement

    def require_entitlement(self, db: Session, user_id: str, now: Optional[datetime] = None) -> Entitlement:
        """check_entitlement that raises QuotaExceeded when the action is not allowed"""
        entitlement = self.check_entitlement(db, user_id, now)
        if not entitlement.allowed:
            self.analytics.log_denied(
                action='ai_rating',
                reason='quota_exceeded',
                user_id=user_id,
                parameters={'used': entitlement.used, 'limit': entitlement.limit}
            )
            raise QuotaExceeded(entitlement.used, entitlement.limit)
        return entitlement

    def consume(self, db: Session, user_id: str, now: Optional[datetime] = None) -> UsageRecord:
        """
        Record one AI rating against the current month.
        Call only after check_entitlement returned allowed.
        """
        self.logger.info(f"consume: Entry - user: {user_id}")

        subscription = self.subscriptions.get_or_create_subscription(db, user_id)
        try:
            record = self.ledger.increment(db, user_id, subscription.plan_tier, now)
            db.commit()
            db.refresh(record)
        except SQLAlchemyError as e:
            db.rollback()
            self.analytics.log_failure(action='consume', error=str(e), user_id=user_id)
            self.logger.error(f"consume: Failure - {e}")
            raise TransientStoreError("Usage store unavailable") from e

        self.analytics.log_success(
            action='consume',
            user_id=user_id,
            parameters={'month': record.month, 'count': record.ratings_used}
        )
        self.logger.info(f"consume: Success - user: {user_id}, month: {record.month}, count: {record.ratings_used}")
        return record

    def try_consume(self, db: Session, user_id: str, now: Optional[datetime] = None) -> UsageRecord:
        """
        Check and consume in one step. Raises QuotaExceeded when the limit is reached.
        """
        self.logger.info(f"try_consume: Entry - user: {user_id}")

        now = now or datetime.utcnow()
        subscription = self.subscriptions.get_or_create_subscription(db, user_id)
        plan = plan_for(subscription.plan_tier)
        limit = resolve_limit(subscription, plan)

        cache = get_cache()
        lock_key = usage_lock_key(user_id, month_key(now))
        lock_acquired = cache.acquire_lock(lock_key, timeout_seconds=10, block_seconds=5)
        if not lock_acquired:
            # The conditional UPDATE still bounds the count; the lock only serialises record creation
            self.logger.warning(f"try_consume: Could not acquire lock - {lock_key}")

        try:
            record = self.ledger.try_increment(db, user_id, plan.id, limit, now)
            if record is None:
                db.rollback()
                current = self.ledger.current_usage(db, user_id, now)
                used = current.ratings_used if current else 0
                self.analytics.log_denied(
                    action='ai_rating',
                    reason='quota_exceeded',
                    user_id=user_id,
                    parameters={'used': used, 'limit': limit}
                )
                raise QuotaExceeded(used, limit)
            db.commit()
            db.refresh(record)
        except SQLAlchemyError as e:
            db.rollback()
            self.analytics.log_failure(action='try_consume', error=str(e), user_id=user_id)
            self.logger.error(f"try_consume: Failure - {e}")
            raise TransientStoreError("Usage store unavailable") from e
        finally:
            if lock_acquired:
                cache.release_lock(lock_key)

        self.logger.info(f"try_consume: Success - user: {user_id}, month: {record.month}, count: {record.ratings_used}")
        return record

    def get_usage_status(self, db: Session, user_id: str, now: Optional[datetime] = None) -> dict:
        """Usage summary for the settings screen"""
        entitlement = self.check_entitlement(db, user_id, now)
        return {
            'plan_tier': entitlement.plan_tier,
            'month': month_key(now),
            'used': entitlement.used,
            'limit': entitlement.limit,
            'remaining': entitlement.remaining,
            'unlimited': entitlement.unlimited,
            'allowed': entitlement.allowed,
        }
