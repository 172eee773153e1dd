import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import BillingError
from app.models.subscription import SubscriptionStatus
from app.services.analytics_service import AnalyticsService
from app.services.billing_provider import (BillingEvent, BillingProvider,
                                           get_billing_provider, map_provider_status)
from app.services.plan_catalog import DEFAULT_TIER, is_known_tier
from app.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

HANDLED_EVENTS = (
    'checkout.session.completed',
    'customer.subscription.created',
    'customer.subscription.updated',
    'customer.subscription.deleted',
)


class BillingService:
    """Bridges the payment provider and the subscription store"""

    def __init__(
        self,
        provider: Optional[BillingProvider] = None,
        subscription_service: Optional[SubscriptionService] = None,
    ):
        self.analytics = AnalyticsService()
        self._provider = provider
        self.subscriptions = subscription_service or SubscriptionService()
        self.logger = logging.getLogger(__name__)

    @property
    def provider(self) -> BillingProvider:
        # Built lazily so plan reads work without Stripe keys
        if self._provider is None:
            self._provider = get_billing_provider()
        return self._provider

    def create_checkout(self, db: Session, user_id: str, plan_tier: str,
                        success_url: Optional[str] = None, cancel_url: Optional[str] = None) -> str:
        self.logger.info(f"create_checkout: Entry - user: {user_id}, tier: {plan_tier}")

        subscription = self.subscriptions.get_or_create_subscription(db, user_id)
        if subscription.plan_tier == plan_tier and subscription.status == SubscriptionStatus.ACTIVE:
            raise ValueError(f"Already subscribed to plan: {plan_tier}")

        url = self.provider.create_checkout_session(
            plan_tier=plan_tier,
            user_id=user_id,
            success_url=success_url or f"{settings.app_base_url}/billing/success",
            cancel_url=cancel_url or f"{settings.app_base_url}/billing/cancel",
            customer_id=subscription.stripe_customer_id,
        )
        self.analytics.log_success(action='create_checkout', user_id=user_id, parameters={'plan_tier': plan_tier})
        self.logger.info(f"create_checkout: Success - user: {user_id}")
        return url

    def create_portal(self, db: Session, user_id: str, return_url: Optional[str] = None) -> str:
        self.logger.info(f"create_portal: Entry - user: {user_id}")

        subscription = self.subscriptions.get_or_create_subscription(db, user_id)
        if not subscription.stripe_customer_id:
            raise ValueError("No billing account for this user")

        return self.provider.create_portal_session(
            subscription.stripe_customer_id,
            return_url or f"{settings.app_base_url}/settings",
        )

    def handle_webhook(self, db: Session, payload: bytes, signature: Optional[str]) -> dict:
        event = self.provider.parse_webhook(payload, signature)
        return self.apply_event(db, event)

    def apply_event(self, db: Session, event: BillingEvent) -> dict:
        """
        Apply a verified billing event. The provider's confirmation is the
        only thing that moves a user to a paid plan.
        """
        self.logger.info(f"apply_event: Entry - id: {event.event_id}, type: {event.event_type}")

        if event.event_type not in HANDLED_EVENTS:
            self.logger.info(f"apply_event: Ignored - type: {event.event_type}")
            return {'event_id': event.event_id, 'handled': False}

        user_id = self._resolve_user(db, event)
        if not user_id:
            self.analytics.log_failure(
                action='apply_billing_event',
                error='Unknown user for billing event',
                parameters={'event_id': event.event_id, 'type': event.event_type}
            )
            raise BillingError(f"Cannot resolve user for event {event.event_id}")

        status = map_provider_status(event.status)
        if event.event_type == 'customer.subscription.deleted':
            subscription = self.subscriptions.apply_plan_change(
                db, user_id, DEFAULT_TIER,
                status=SubscriptionStatus.CANCELED,
                stripe_customer_id=event.customer_id,
                current_period_end=event.current_period_end,
            )
        elif event.plan_tier and is_known_tier(event.plan_tier) and status != SubscriptionStatus.INCOMPLETE:
            subscription = self.subscriptions.apply_plan_change(
                db, user_id, event.plan_tier,
                status=status,
                stripe_customer_id=event.customer_id,
                stripe_subscription_id=event.subscription_id,
                current_period_end=event.current_period_end,
            )
        else:
            # Unpaid or unrecognised price; tier and balance stay put
            subscription = self.subscriptions.update_status(db, user_id, status)

        self.logger.info(
            f"apply_event: Success - user: {user_id}, tier: {subscription.plan_tier}, "
            f"status: {subscription.status.value}")
        return {
            'event_id': event.event_id,
            'handled': True,
            'user_id': user_id,
            'plan_tier': subscription.plan_tier,
            'status': subscription.status.value,
        }

    def _resolve_user(self, db: Session, event: BillingEvent) -> Optional[str]:
        if event.user_id:
            return event.user_id
        if event.subscription_id:
            subscription = self.subscriptions.find_by_stripe_subscription(db, event.subscription_id)
            if subscription:
                return subscription.user_id
        if event.customer_id:
            subscription = self.subscriptions.find_by_stripe_customer(db, event.customer_id)
            if subscription:
                return subscription.user_id
        return None
