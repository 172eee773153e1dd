from sqlalchemy import Column, String, Integer, DateTime, Enum
from app.core.database import Base
from datetime import datetime
import enum


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "active"
    CANCELED = "canceled"
    PAST_DUE = "past_due"
    INCOMPLETE = "incomplete"


class Subscription(Base):
    __tablename__ = "subscriptions"

    # One subscription document per user
    user_id = Column(String, primary_key=True, index=True)
    plan_tier = Column(String, nullable=False, default='free', index=True)  # 'free', 'starter', 'pro'
    status = Column(Enum(SubscriptionStatus), nullable=False, default=SubscriptionStatus.ACTIVE, index=True)
    tokens = Column(Integer, nullable=True)  # remaining-token balance; null = use plan allowance, -1 = unlimited
    stripe_customer_id = Column(String, nullable=True, index=True)
    stripe_subscription_id = Column(String, nullable=True, index=True)
    current_period_end = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
