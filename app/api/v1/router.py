from fastapi import APIRouter
from app.api.v1.routes import posts, hashtags, entitlements, subscriptions, webhooks

api_router = APIRouter()

api_router.include_router(posts.router, prefix="/posts", tags=["posts"])
api_router.include_router(hashtags.router, prefix="/hashtags", tags=["hashtags"])
api_router.include_router(entitlements.router, prefix="/entitlements", tags=["entitlements"])
api_router.include_router(subscriptions.router, prefix="/subscriptions", tags=["subscriptions"])
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
