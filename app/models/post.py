from sqlalchemy import Column, String, Integer, DateTime, Boolean, Enum, Text, JSON
from app.core.database import Base
from datetime import datetime
import enum


class PostStatus(str, enum.Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    PUBLISHED = "published"


class Post(Base):
    __tablename__ = "posts"

    id = Column(String, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False, default='')
    body = Column(Text, nullable=False, default='')
    tags = Column(JSON, nullable=False, default=list)
    status = Column(Enum(PostStatus), nullable=False, default=PostStatus.DRAFT, index=True)
    scheduled_at = Column(DateTime, nullable=True, index=True)  # naive UTC
    ai_rated = Column(Boolean, nullable=False, default=False)
    rating = Column(Integer, nullable=True)  # 1-10
    feedback = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, index=True)
