from sqlalchemy import Column, String, Integer, DateTime, UniqueConstraint
from app.core.database import Base
from datetime import datetime


class UsageRecord(Base):
    __tablename__ = "usage_records"
    __table_args__ = (
        UniqueConstraint("user_id", "month", name="uq_usage_records_user_month"),
    )

    id = Column(String, primary_key=True, index=True)  # "<user_id>_<YYYY-MM>"
    user_id = Column(String, nullable=False, index=True)
    month = Column(String(7), nullable=False, index=True)  # YYYY-MM
    plan_tier = Column(String, nullable=False, default='free')  # snapshot at first use in the month
    ratings_used = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
