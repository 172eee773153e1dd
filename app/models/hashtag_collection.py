from sqlalchemy import Column, String, DateTime, JSON
from app.core.database import Base
from datetime import datetime


class HashtagCollection(Base):
    __tablename__ = "hashtag_collections"

    id = Column(String, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    hashtags = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
