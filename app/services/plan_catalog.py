from typing import Optional

from pydantic import BaseModel

from app.core.config import settings

# Reserved allowance/balance value meaning "no numeric limit"
UNLIMITED = -1

DEFAULT_TIER = 'free'


class PlanFeatures(BaseModel):
    """Pydantic model for plan quotas and feature flags"""
    ai_ratings_per_month: int  # UNLIMITED (-1) for no limit
    post_reminders: bool
    advanced_ai_feedback: bool
    csv_export: bool


class PlanTier(BaseModel):
    """Immutable plan tier definition"""
    id: str
    name: str
    price: float
    features: PlanFeatures

    model_config = {"frozen": True}

    @property
    def monthly_allowance(self) -> int:
        return self.features.ai_ratings_per_month

    @property
    def price_id(self) -> Optional[str]:
        """Stripe price configured for this tier (None for free)"""
        return {
            'starter': settings.stripe_starter_price_id,
            'pro': settings.stripe_pro_price_id,
        }.get(self.id)


PLANS = {
    'free': PlanTier(
        id='free',
        name='Free',
        price=0,
        features=PlanFeatures(
            ai_ratings_per_month=2,
            post_reminders=False,
            advanced_ai_feedback=False,
            csv_export=False,
        ),
    ),
    'starter': PlanTier(
        id='starter',
        name='Starter',
        price=9,
        features=PlanFeatures(
            ai_ratings_per_month=20,
            post_reminders=True,
            advanced_ai_feedback=False,
            csv_export=False,
        ),
    ),
    'pro': PlanTier(
        id='pro',
        name='Pro',
        price=29,
        features=PlanFeatures(
            ai_ratings_per_month=UNLIMITED,
            post_reminders=True,
            advanced_ai_feedback=True,
            csv_export=True,
        ),
    ),
}


def plan_for(tier_id: Optional[str]) -> PlanTier:
    """Look up a plan tier. Unknown identifiers fall back to the free tier."""
    if tier_id:
        plan = PLANS.get(tier_id) or PLANS.get(tier_id.strip().lower())
        if plan:
            return plan
    return PLANS[DEFAULT_TIER]


def is_known_tier(tier_id: Optional[str]) -> bool:
    return bool(tier_id) and tier_id.strip().lower() in PLANS


def all_plans() -> list[PlanTier]:
    return sorted(PLANS.values(), key=lambda plan: plan.price)


def is_paid_plan(tier_id: Optional[str]) -> bool:
    return plan_for(tier_id).price > 0


def is_unlimited(value: Optional[int]) -> bool:
    return value == UNLIMITED


def resolve_limit(subscription, plan: PlanTier) -> int:
    """
    Single canonical limit for an entitlement decision.

    A subscription carrying an explicit token balance uses that balance as the
    limit (token model); otherwise the plan's monthly allowance applies
    (counter model). Either may be UNLIMITED.
    """
    tokens = getattr(subscription, 'tokens', None) if subscription is not None else None
    if tokens is not None:
        return tokens
    return plan.monthly_allowance


def tokens_for_plan(tier_id: Optional[str]) -> int:
    """Token balance assigned when a plan change is confirmed"""
    return plan_for(tier_id).monthly_allowance
