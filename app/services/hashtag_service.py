import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import NotFound, TransientStoreError
from app.models.hashtag_collection import HashtagCollection

logger = logging.getLogger(__name__)


def normalize_hashtags(hashtags: Optional[list[str]]) -> list[str]:
    """Trimmed, '#'-prefixed, de-duplicated in input order"""
    result = []
    for tag in hashtags or []:
        tag = (tag or '').strip().lstrip('#')
        if not tag:
            continue
        tag = f"#{tag}"
        if tag not in result:
            result.append(tag)
    return result


def collection_to_dict(collection: HashtagCollection) -> dict:
    return {
        'id': collection.id,
        'name': collection.name,
        'hashtags': list(collection.hashtags or []),
        'created_at': collection.created_at.isoformat() if collection.created_at else None,
        'updated_at': collection.updated_at.isoformat() if collection.updated_at else None,
    }


class HashtagService:
    """Named, reusable sets of hashtags owned by a user"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def list_collections(self, db: Session, user_id: str) -> list[HashtagCollection]:
        return db.query(HashtagCollection).filter(
            HashtagCollection.user_id == user_id
        ).order_by(HashtagCollection.name.asc()).all()

    def get_collection(self, db: Session, user_id: str, collection_id: str) -> HashtagCollection:
        collection = db.query(HashtagCollection).filter(
            HashtagCollection.id == collection_id,
            HashtagCollection.user_id == user_id,
        ).first()
        if not collection:
            raise NotFound(f"Hashtag collection not found: {collection_id}")
        return collection

    def create_collection(self, db: Session, user_id: str, name: str, hashtags: list[str]) -> HashtagCollection:
        self.logger.info(f"create_collection: Entry - user: {user_id}, name: {name}")

        name = (name or '').strip()
        if not name:
            raise ValueError("Collection name is required")

        now = datetime.utcnow()
        collection = HashtagCollection(
            id=str(uuid.uuid4()),
            user_id=user_id,
            name=name,
            hashtags=normalize_hashtags(hashtags),
            created_at=now,
            updated_at=now,
        )
        self._commit(db, 'create_collection', lambda: db.add(collection))
        db.refresh(collection)
        self.logger.info(f"create_collection: Success - id: {collection.id}")
        return collection

    def update_collection(
        self,
        db: Session,
        user_id: str,
        collection_id: str,
        name: Optional[str] = None,
        hashtags: Optional[list[str]] = None,
    ) -> HashtagCollection:
        collection = self.get_collection(db, user_id, collection_id)
        if name is not None and not name.strip():
            raise ValueError("Collection name is required")

        def apply():
            if name is not None:
                collection.name = name.strip()
            if hashtags is not None:
                collection.hashtags = normalize_hashtags(hashtags)
            collection.updated_at = datetime.utcnow()

        self._commit(db, 'update_collection', apply)
        db.refresh(collection)
        return collection

    def delete_collection(self, db: Session, user_id: str, collection_id: str):
        collection = self.get_collection(db, user_id, collection_id)
        self._commit(db, 'delete_collection', lambda: db.delete(collection))
        self.logger.info(f"delete_collection: Success - id: {collection_id}")

    def _commit(self, db: Session, action: str, mutate):
        try:
            mutate()
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            self.logger.error(f"{action}: Failure - {e}")
            raise TransientStoreError("Hashtag store unavailable") from e
