"""
Payment collaborator.

The engine only decides which plan a checkout is for and reacts to the
provider's confirmation; session mechanics live in the provider SDK.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Protocol

import stripe

from app.core.config import settings
from app.core.errors import BillingError
from app.models.subscription import SubscriptionStatus
from app.services.plan_catalog import is_known_tier, is_paid_plan, plan_for

logger = logging.getLogger(__name__)

STRIPE_STATUS_MAP = {
    'active': SubscriptionStatus.ACTIVE,
    'trialing': SubscriptionStatus.ACTIVE,
    'past_due': SubscriptionStatus.PAST_DUE,
    'unpaid': SubscriptionStatus.PAST_DUE,
    'canceled': SubscriptionStatus.CANCELED,
    'incomplete_expired': SubscriptionStatus.CANCELED,
    'incomplete': SubscriptionStatus.INCOMPLETE,
}


def map_provider_status(status: Optional[str]) -> SubscriptionStatus:
    return STRIPE_STATUS_MAP.get((status or '').lower(), SubscriptionStatus.INCOMPLETE)


class WebhookVerificationError(ValueError):
    """Webhook payload or signature rejected"""


@dataclass
class BillingEvent:
    event_id: str
    event_type: str
    user_id: Optional[str] = None
    customer_id: Optional[str] = None
    subscription_id: Optional[str] = None
    plan_tier: Optional[str] = None
    status: Optional[str] = None
    current_period_end: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class BillingProvider(Protocol):
    def create_checkout_session(
        self,
        plan_tier: str,
        user_id: str,
        success_url: str,
        cancel_url: str,
        customer_id: Optional[str] = None,
    ) -> str:
        """Return the checkout redirect URL"""
        ...

    def create_portal_session(self, customer_id: str, return_url: str) -> str:
        """Return the self-service billing portal URL"""
        ...

    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> BillingEvent:
        """Verify and normalise a provider webhook"""
        ...


class StripeBillingProvider:
    def __init__(self, secret_key: Optional[str] = None, webhook_secret: Optional[str] = None):
        self.secret_key = secret_key or settings.stripe_secret_key
        self.webhook_secret = webhook_secret or settings.stripe_webhook_secret
        self.logger = logging.getLogger(__name__)
        if not self.secret_key:
            raise BillingError("STRIPE_SECRET_KEY not configured")
        stripe.api_key = self.secret_key

    def create_checkout_session(
        self,
        plan_tier: str,
        user_id: str,
        success_url: str,
        cancel_url: str,
        customer_id: Optional[str] = None,
    ) -> str:
        if not is_known_tier(plan_tier) or not is_paid_plan(plan_tier):
            raise ValueError(f"Invalid plan type: {plan_tier}")

        plan = plan_for(plan_tier)
        if not plan.price_id:
            raise BillingError(f"No Stripe price configured for plan: {plan.id}")

        metadata = {'userId': user_id, 'planType': plan.id}
        params: Dict[str, Any] = {
            'mode': 'subscription',
            'payment_method_types': ['card'],
            'line_items': [{'price': plan.price_id, 'quantity': 1}],
            'success_url': success_url,
            'cancel_url': cancel_url,
            'client_reference_id': user_id,
            'metadata': metadata,
            'subscription_data': {'metadata': metadata},
        }
        if customer_id:
            params['customer'] = customer_id

        try:
            session = stripe.checkout.Session.create(**params)
        except stripe.StripeError as e:
            self.logger.error(f"create_checkout_session: Failure - {e}")
            raise BillingError(f"Failed to create checkout session: {e}") from e
        return session.url

    def create_portal_session(self, customer_id: str, return_url: str) -> str:
        try:
            session = stripe.billing_portal.Session.create(customer=customer_id, return_url=return_url)
        except stripe.StripeError as e:
            self.logger.error(f"create_portal_session: Failure - {e}")
            raise BillingError(f"Failed to create portal session: {e}") from e
        return session.url

    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> BillingEvent:
        if not self.webhook_secret:
            raise BillingError("STRIPE_WEBHOOK_SECRET not configured")
        if not signature:
            raise WebhookVerificationError("Missing stripe-signature header")

        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
            event = json.loads(payload)
        except stripe.SignatureVerificationError as e:
            raise WebhookVerificationError(f"Invalid signature: {e}") from e
        except ValueError as e:
            raise WebhookVerificationError(f"Invalid payload: {e}") from e

        return parse_stripe_event(event)


def parse_stripe_event(event) -> BillingEvent:
    """Normalise a decoded Stripe event payload into a BillingEvent"""
    data = event["data"]["object"]
    metadata = dict(data.get("metadata") or {})

    billing_event = BillingEvent(
        event_id=event["id"],
        event_type=event["type"],
        user_id=metadata.get("userId"),
        customer_id=data.get("customer"),
        plan_tier=metadata.get("planType"),
        metadata=metadata,
    )

    if billing_event.event_type == "checkout.session.completed":
        billing_event.user_id = billing_event.user_id or data.get("client_reference_id")
        billing_event.subscription_id = data.get("subscription")
        billing_event.status = "active"
    elif billing_event.event_type.startswith("customer.subscription."):
        billing_event.subscription_id = data.get("id")
        billing_event.status = data.get("status")
        period_end = data.get("current_period_end")
        if period_end:
            billing_event.current_period_end = datetime.utcfromtimestamp(period_end)
        # The live price wins; metadata is frozen at checkout
        items = (data.get("items") or {}).get("data") or []
        if items:
            billing_event.plan_tier = (
                price_to_plan((items[0].get("price") or {}).get("id")) or billing_event.plan_tier)

    return billing_event


def price_to_plan(price_id: Optional[str]) -> Optional[str]:
    if not price_id:
        return None
    price_map = {
        settings.stripe_starter_price_id: 'starter',
        settings.stripe_pro_price_id: 'pro',
    }
    return price_map.get(price_id)


def get_billing_provider() -> BillingProvider:
    return StripeBillingProvider()
