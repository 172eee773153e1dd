import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.middleware import get_current_user
from app.services.billing_service import BillingService
from app.services.subscription_service import SubscriptionService

router = APIRouter()
logger = logging.getLogger(__name__)


def get_subscription_service() -> SubscriptionService:
    """Dependency to get subscription service instance"""
    return SubscriptionService()


def get_billing_service() -> BillingService:
    """Dependency to get billing service instance"""
    return BillingService()


class CheckoutRequest(BaseModel):
    plan_tier: str
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None


class PortalRequest(BaseModel):
    return_url: Optional[str] = None


@router.get("/plans")
async def get_plans(
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    """
    Get all available plans.
    Public endpoint - no authentication required.
    """
    logger.info("get_plans: Entry")
    plans = subscription_service.get_all_plans()
    logger.info(f"get_plans: Success - {len(plans)} plans")
    return {"plans": plans}


@router.get("/current")
async def get_current_subscription(
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    """
    Get current user's subscription. A free subscription is created on first read.
    Requires authentication.
    """
    user_id = current_user['uid']
    logger.info(f"get_current_subscription: Entry - user: {user_id}")
    subscription = subscription_service.get_current_subscription(db, user_id)
    logger.info(f"get_current_subscription: Success - user: {user_id}")
    return subscription


@router.get("/history")
async def get_subscription_history(
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service)
):
    """
    Get subscription change history for current user.
    Requires authentication.
    """
    user_id = current_user['uid']
    logger.info(f"get_subscription_history: Entry - user: {user_id}")
    history = subscription_service.get_subscription_history(db, user_id)
    return {"history": history}


@router.post("/checkout")
async def create_checkout(
    request: CheckoutRequest,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    billing_service: BillingService = Depends(get_billing_service)
):
    """
    Start a hosted checkout for a paid plan.
    The plan only changes once the payment provider confirms it via webhook.
    """
    user_id = current_user['uid']
    logger.info(f"create_checkout: Entry - user: {user_id}, tier: {request.plan_tier}")

    try:
        url = billing_service.create_checkout(
            db, user_id, request.plan_tier,
            success_url=request.success_url,
            cancel_url=request.cancel_url,
        )
    except ValueError as e:
        logger.warning(f"create_checkout: ValueError - {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    logger.info(f"create_checkout: Success - user: {user_id}")
    return {"url": url}


@router.post("/portal")
async def create_portal(
    request: PortalRequest,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    billing_service: BillingService = Depends(get_billing_service)
):
    """Open the self-service billing portal for the current user"""
    user_id = current_user['uid']
    logger.info(f"create_portal: Entry - user: {user_id}")

    try:
        url = billing_service.create_portal(db, user_id, return_url=request.return_url)
    except ValueError as e:
        logger.warning(f"create_portal: ValueError - {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return {"url": url}
