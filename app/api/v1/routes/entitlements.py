import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.middleware import get_current_user
from app.services.entitlement_service import EntitlementService

router = APIRouter()
logger = logging.getLogger(__name__)


def get_entitlement_service() -> EntitlementService:
    """Dependency to get entitlement service instance"""
    return EntitlementService()


def usage_response(record) -> dict:
    return {"month": record.month, "used": record.ratings_used, "plan_tier": record.plan_tier}


@router.get("/check")
async def check_entitlement(
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    entitlement_service: EntitlementService = Depends(get_entitlement_service)
):
    """May the current user perform one more AI rating this month"""
    user_id = current_user['uid']
    logger.info(f"check_entitlement: Entry - user: {user_id}")
    entitlement = entitlement_service.check_entitlement(db, user_id)
    return {
        "allowed": entitlement.allowed,
        "used": entitlement.used,
        "limit": entitlement.limit,
        "remaining": entitlement.remaining,
        "unlimited": entitlement.unlimited,
        "plan_tier": entitlement.plan_tier,
    }


@router.get("/usage")
async def get_usage(
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    entitlement_service: EntitlementService = Depends(get_entitlement_service)
):
    """Current month usage summary"""
    user_id = current_user['uid']
    logger.info(f"get_usage: Entry - user: {user_id}")
    return entitlement_service.get_usage_status(db, user_id)


@router.post("/consume")
async def consume(
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    entitlement_service: EntitlementService = Depends(get_entitlement_service)
):
    """
    Record one AI rating. Denied with 403 when the quota is exhausted.
    """
    user_id = current_user['uid']
    logger.info(f"consume: Entry - user: {user_id}")
    entitlement_service.require_entitlement(db, user_id)
    record = entitlement_service.consume(db, user_id)
    logger.info(f"consume: Success - user: {user_id}, used: {record.ratings_used}")
    return usage_response(record)


@router.post("/try-consume")
async def try_consume(
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    entitlement_service: EntitlementService = Depends(get_entitlement_service)
):
    """Atomic check-and-consume"""
    user_id = current_user['uid']
    logger.info(f"try_consume: Entry - user: {user_id}")
    record = entitlement_service.try_consume(db, user_id)
    return usage_response(record)
