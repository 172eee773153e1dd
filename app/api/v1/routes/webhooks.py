import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.services.billing_provider import WebhookVerificationError
from app.services.billing_service import BillingService

router = APIRouter()
logger = logging.getLogger(__name__)


def get_billing_service() -> BillingService:
    """Dependency to get billing service instance"""
    return BillingService()


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
    billing_service: BillingService = Depends(get_billing_service)
):
    """
    Payment provider callback. Authenticated by signature, not by user token.
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    logger.info(f"stripe_webhook: Entry - {len(payload)} bytes")

    try:
        result = billing_service.handle_webhook(db, payload, signature)
    except WebhookVerificationError as e:
        logger.warning(f"stripe_webhook: Rejected - {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    logger.info(f"stripe_webhook: Success - {result}")
    return result
