import json
import logging
import uuid
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import TransientStoreError
from app.core.listeners import ListenerRegistry, Unsubscribe, get_listener_registry, subscription_key
from app.models.subscription import Subscription, SubscriptionStatus
from app.models.subscription_history import SubscriptionHistory
from app.services.analytics_service import AnalyticsService
from app.services.plan_catalog import (DEFAULT_TIER, all_plans, is_known_tier,
                                       is_unlimited, plan_for, tokens_for_plan)

logger = logging.getLogger(__name__)


def subscription_to_dict(subscription: Subscription) -> dict:
    plan = plan_for(subscription.plan_tier)
    return {
        'user_id': subscription.user_id,
        'plan_tier': plan.id,
        'plan_name': plan.name,
        'status': subscription.status.value,
        'tokens': None if is_unlimited(subscription.tokens) else subscription.tokens,
        'unlimited': is_unlimited(subscription.tokens) or (
            subscription.tokens is None and is_unlimited(plan.monthly_allowance)
        ),
        'stripe_customer_id': subscription.stripe_customer_id,
        'current_period_end': subscription.current_period_end.isoformat() if subscription.current_period_end else None,
        'features': plan.features.model_dump(),
        'created_at': subscription.created_at.isoformat() if subscription.created_at else None,
        'updated_at': subscription.updated_at.isoformat() if subscription.updated_at else None,
    }


class SubscriptionService:
    def __init__(self, listeners: Optional[ListenerRegistry] = None):
        self.analytics = AnalyticsService()
        self.listeners = listeners or get_listener_registry()
        self.logger = logging.getLogger(__name__)

    def get_all_plans(self) -> list[dict]:
        """All plan tiers ordered by price"""
        return [
            {
                'tier': plan.id,
                'name': plan.name,
                'price': plan.price,
                'ai_ratings_per_month': None if is_unlimited(plan.monthly_allowance) else plan.monthly_allowance,
                'unlimited': is_unlimited(plan.monthly_allowance),
                'features': plan.features.model_dump(),
            }
            for plan in all_plans()
        ]

    def get_or_create_subscription(self, db: Session, user_id: str) -> Subscription:
        """
        Read the user's subscription, creating the free default on first read.
        A missing subscription is never an error.
        """
        self.logger.info(f"get_or_create_subscription: Entry - user: {user_id}")

        try:
            subscription = db.query(Subscription).filter(Subscription.user_id == user_id).first()
            if subscription:
                return subscription

            now = datetime.utcnow()
            subscription = Subscription(
                user_id=user_id,
                plan_tier=DEFAULT_TIER,
                status=SubscriptionStatus.ACTIVE,
                tokens=settings.default_starting_tokens,
                created_at=now,
                updated_at=now,
            )
            db.add(subscription)
            db.add(SubscriptionHistory(
                id=str(uuid.uuid4()),
                user_id=user_id,
                action='created',
                from_plan=None,
                to_plan=DEFAULT_TIER,
                details=json.dumps({'tokens': settings.default_starting_tokens}),
                created_at=now,
            ))
            db.commit()
            db.refresh(subscription)

            self.analytics.log_success(
                action='create_default_subscription',
                user_id=user_id,
                parameters={'plan_tier': DEFAULT_TIER}
            )
            self.logger.info(f"get_or_create_subscription: Created default - user: {user_id}")
            self._notify(subscription)
            return subscription
        except SQLAlchemyError as e:
            db.rollback()
            self.analytics.log_failure(action='get_or_create_subscription', error=str(e), user_id=user_id)
            self.logger.error(f"get_or_create_subscription: Failure - {e}")
            raise TransientStoreError("Subscription store unavailable") from e

    def get_current_subscription(self, db: Session, user_id: str) -> dict:
        self.logger.info(f"get_current_subscription: Entry - user: {user_id}")
        subscription = self.get_or_create_subscription(db, user_id)
        self.logger.info(f"get_current_subscription: Success - user: {user_id}, tier: {subscription.plan_tier}")
        return subscription_to_dict(subscription)

    def find_by_stripe_subscription(self, db: Session, stripe_subscription_id: str) -> Optional[Subscription]:
        return db.query(Subscription).filter(
            Subscription.stripe_subscription_id == stripe_subscription_id
        ).first()

    def find_by_stripe_customer(self, db: Session, stripe_customer_id: str) -> Optional[Subscription]:
        return db.query(Subscription).filter(
            Subscription.stripe_customer_id == stripe_customer_id
        ).first()

    def apply_plan_change(
        self,
        db: Session,
        user_id: str,
        plan_tier: str,
        status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
        stripe_customer_id: Optional[str] = None,
        stripe_subscription_id: Optional[str] = None,
        current_period_end: Optional[datetime] = None,
    ) -> Subscription:
        """
        Apply a plan change confirmed by the payment provider.

        Sets plan tier and status and assigns the token balance of the new tier.
        """
        self.logger.info(
            f"apply_plan_change: Entry - user: {user_id}, tier: {plan_tier}, status: {status.value}")

        if not is_known_tier(plan_tier):
            raise ValueError(f"Invalid plan tier: {plan_tier}")
        plan = plan_for(plan_tier)

        try:
            subscription = self.get_or_create_subscription(db, user_id)
            old_plan = subscription.plan_tier
            old_status = subscription.status

            now = datetime.utcnow()
            subscription.plan_tier = plan.id
            subscription.status = status
            subscription.tokens = tokens_for_plan(plan.id)
            if stripe_customer_id:
                subscription.stripe_customer_id = stripe_customer_id
            if stripe_subscription_id:
                subscription.stripe_subscription_id = stripe_subscription_id
            if current_period_end:
                subscription.current_period_end = current_period_end
            subscription.updated_at = now

            db.add(SubscriptionHistory(
                id=str(uuid.uuid4()),
                user_id=user_id,
                action=self._history_action(old_plan, plan.id, old_status, status),
                from_plan=old_plan,
                to_plan=plan.id,
                details=json.dumps({
                    'from_status': old_status.value if old_status else None,
                    'to_status': status.value,
                    'tokens': subscription.tokens,
                    'stripe_subscription_id': stripe_subscription_id,
                }),
                created_at=now,
            ))
            db.commit()
            db.refresh(subscription)

            self.analytics.log_success(
                action='apply_plan_change',
                user_id=user_id,
                parameters={'from_plan': old_plan, 'to_plan': plan.id, 'status': status.value}
            )
            self.logger.info(f"apply_plan_change: Success - user: {user_id}, {old_plan} -> {plan.id}")
            self._notify(subscription)
            return subscription
        except SQLAlchemyError as e:
            db.rollback()
            self.analytics.log_failure(
                action='apply_plan_change',
                error=str(e),
                user_id=user_id,
                parameters={'plan_tier': plan_tier}
            )
            self.logger.error(f"apply_plan_change: Failure - {e}")
            raise TransientStoreError("Subscription store unavailable") from e

    def update_status(self, db: Session, user_id: str, status: SubscriptionStatus) -> Subscription:
        """Status-only change (e.g. past_due) keeping plan and balance"""
        self.logger.info(f"update_status: Entry - user: {user_id}, status: {status.value}")

        try:
            subscription = self.get_or_create_subscription(db, user_id)
            old_status = subscription.status
            if old_status == status:
                return subscription

            now = datetime.utcnow()
            subscription.status = status
            subscription.updated_at = now
            db.add(SubscriptionHistory(
                id=str(uuid.uuid4()),
                user_id=user_id,
                action='status_changed',
                from_plan=subscription.plan_tier,
                to_plan=subscription.plan_tier,
                details=json.dumps({'from_status': old_status.value, 'to_status': status.value}),
                created_at=now,
            ))
            db.commit()
            db.refresh(subscription)
            self.logger.info(f"update_status: Success - user: {user_id}, {old_status.value} -> {status.value}")
            self._notify(subscription)
            return subscription
        except SQLAlchemyError as e:
            db.rollback()
            self.logger.error(f"update_status: Failure - {e}")
            raise TransientStoreError("Subscription store unavailable") from e

    def get_subscription_history(self, db: Session, user_id: str) -> list[dict]:
        self.logger.info(f"get_subscription_history: Entry - user: {user_id}")

        history = db.query(SubscriptionHistory).filter(
            SubscriptionHistory.user_id == user_id
        ).order_by(SubscriptionHistory.created_at.desc()).all()

        result = [
            {
                'id': entry.id,
                'action': entry.action,
                'from_plan': entry.from_plan,
                'to_plan': entry.to_plan,
                'created_at': entry.created_at.isoformat(),
                'details': json.loads(entry.details) if entry.details else None
            }
            for entry in history
        ]
        self.logger.info(f"get_subscription_history: Success - user: {user_id}, count: {len(result)}")
        return result

    def subscribe_to_subscription(self, user_id: str, callback: Callable[[dict], None]) -> Unsubscribe:
        """Push the user's subscription state to callback on every change"""
        return self.listeners.subscribe(subscription_key(user_id), callback)

    def _notify(self, subscription: Subscription):
        self.listeners.notify(subscription_key(subscription.user_id), subscription_to_dict(subscription))

    @staticmethod
    def _history_action(old_plan: str, new_plan: str, old_status, new_status) -> str:
        if new_status == SubscriptionStatus.CANCELED:
            return 'canceled'
        old_price = plan_for(old_plan).price
        new_price = plan_for(new_plan).price
        if new_price > old_price:
            return 'upgraded'
        if new_price < old_price:
            return 'downgraded'
        return 'status_changed' if old_status != new_status else 'renewed'
