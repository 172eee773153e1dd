from datetime import datetime
from typing import Optional
import logging

from sqlalchemy import and_, update
from sqlalchemy.orm import Session

from app.models.usage_record import UsageRecord
from app.services.plan_catalog import is_unlimited

logger = logging.getLogger(__name__)


def month_key(instant: Optional[datetime] = None) -> str:
    """Usage window key, zero-padded YYYY-MM"""
    instant = instant or datetime.utcnow()
    return f"{instant.year:04d}-{instant.month:02d}"


def usage_record_id(user_id: str, month: str) -> str:
    return f"{user_id}_{month}"


class UsageLedger:
    """Per-user, per-month counter of AI ratings. A missing record means zero usage."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def current_usage(self, db: Session, user_id: str, now: Optional[datetime] = None) -> Optional[UsageRecord]:
        month = month_key(now)
        return db.query(UsageRecord).filter(
            UsageRecord.id == usage_record_id(user_id, month)
        ).first()

    def increment(self, db: Session, user_id: str, plan_tier: str, now: Optional[datetime] = None) -> UsageRecord:
        """Read current count (0 if absent) and write count + 1. Caller commits."""
        now = now or datetime.utcnow()
        record = self._get_or_create(db, user_id, plan_tier, now)
        record.ratings_used = (record.ratings_used or 0) + 1
        record.updated_at = now
        db.flush()
        self.logger.info(f"increment: user: {user_id}, month: {record.month}, count: {record.ratings_used}")
        return record

    def try_increment(
        self,
        db: Session,
        user_id: str,
        plan_tier: str,
        limit: int,
        now: Optional[datetime] = None
    ) -> Optional[UsageRecord]:
        """
        Conditionally increment in a single UPDATE guarded by ratings_used < limit.
        Returns the updated record, or None when the limit is already reached. Caller commits.
        """
        now = now or datetime.utcnow()
        record = self._get_or_create(db, user_id, plan_tier, now)

        condition = UsageRecord.id == record.id
        if not is_unlimited(limit):
            condition = and_(condition, UsageRecord.ratings_used < limit)

        result = db.execute(
            update(UsageRecord)
            .where(condition)
            .values(ratings_used=UsageRecord.ratings_used + 1, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        db.refresh(record)

        if result.rowcount == 0:
            self.logger.info(f"try_increment: Limit reached - user: {user_id}, month: {record.month}, limit: {limit}")
            return None

        self.logger.info(f"try_increment: user: {user_id}, month: {record.month}, count: {record.ratings_used}")
        return record

    def reset(self, db: Session, user_id: str, month: Optional[str] = None) -> int:
        """Set a month's count back to zero. Returns rows updated. Caller commits."""
        month = month or month_key()
        rows = db.query(UsageRecord).filter(
            UsageRecord.id == usage_record_id(user_id, month)
        ).update({"ratings_used": 0, "updated_at": datetime.utcnow()})
        self.logger.info(f"reset: user: {user_id}, month: {month}, rows: {rows}")
        return rows

    def _get_or_create(self, db: Session, user_id: str, plan_tier: str, now: datetime) -> UsageRecord:
        month = month_key(now)
        record_id = usage_record_id(user_id, month)
        record = db.query(UsageRecord).filter(UsageRecord.id == record_id).first()
        if record:
            return record

        record = UsageRecord(
            id=record_id,
            user_id=user_id,
            month=month,
            plan_tier=plan_tier,
            ratings_used=0,
            created_at=now,
            updated_at=now,
        )
        db.add(record)
        db.flush()
        return record
