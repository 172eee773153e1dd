import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.middleware import get_current_user
from app.services.hashtag_service import HashtagService, collection_to_dict

router = APIRouter()
logger = logging.getLogger(__name__)


def get_hashtag_service() -> HashtagService:
    """Dependency to get hashtag service instance"""
    return HashtagService()


class CollectionCreateRequest(BaseModel):
    name: str
    hashtags: list[str] = []


class CollectionUpdateRequest(BaseModel):
    name: Optional[str] = None
    hashtags: Optional[list[str]] = None


@router.get("")
async def list_collections(
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    hashtag_service: HashtagService = Depends(get_hashtag_service)
):
    collections = hashtag_service.list_collections(db, current_user['uid'])
    return {"collections": [collection_to_dict(c) for c in collections]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_collection(
    request: CollectionCreateRequest,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    hashtag_service: HashtagService = Depends(get_hashtag_service)
):
    try:
        collection = hashtag_service.create_collection(db, current_user['uid'], request.name, request.hashtags)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return collection_to_dict(collection)


@router.patch("/{collection_id}")
async def update_collection(
    collection_id: str,
    request: CollectionUpdateRequest,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    hashtag_service: HashtagService = Depends(get_hashtag_service)
):
    try:
        collection = hashtag_service.update_collection(
            db, current_user['uid'], collection_id, name=request.name, hashtags=request.hashtags)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return collection_to_dict(collection)


@router.delete("/{collection_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_collection(
    collection_id: str,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    hashtag_service: HashtagService = Depends(get_hashtag_service)
):
    hashtag_service.delete_collection(db, current_user['uid'], collection_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
