from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from sqlalchemy.exc import SQLAlchemyError
from app.core.config import settings
from app.core.firebase import verify_firebase_token
from app.core.database import SessionLocal
from app.models.subscription import Subscription
from app.core.cache import get_cache, rate_limit_key
from app.services.plan_catalog import DEFAULT_TIER
from datetime import datetime, timedelta, timezone
import logging

logger = logging.getLogger(__name__)

# Request limits per plan. 0 means no hourly cap.
RATE_LIMITS = {
    'free': {
        'per_minute': 60,
        'per_hour': 1000,
    },
    'starter': {
        'per_minute': 90,
        'per_hour': 3000,
    },
    'pro': {
        'per_minute': 120,
        'per_hour': 0,
    }
}

# Limits for unauthenticated requests (IP-based)
DEFAULT_IP_LIMITS = {
    'per_minute': 30,
    'per_hour': 500,
}

EXEMPT_PATHS = ['/health', '/docs', '/openapi.json', '/redoc']


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Per-plan request rate limiting, or per-IP for unauthenticated requests.
    Counters live in Redis; when Redis is down requests are let through.
    """

    async def dispatch(self, request: Request, call_next):
        if not settings.rate_limit_enabled or request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        # Webhooks are authenticated by signature
        if request.url.path.startswith(f'{settings.api_v1_str}/webhooks'):
            return await call_next(request)

        user_id, user_plan = self._identify(request)

        if user_id:
            limits = RATE_LIMITS.get(user_plan, RATE_LIMITS[DEFAULT_TIER])
            if not self._within_limits('user', user_id, limits):
                logger.warning(f"Rate limit exceeded - user: {user_id}, plan: {user_plan}")
                return JSONResponse(
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    content={
                        "detail": f"Rate limit exceeded. Your {user_plan} plan allows {limits['per_minute']} requests per minute. Please try again later.",
                        "retry_after": 60
                    },
                    headers={
                        "Retry-After": "60",
                        "X-RateLimit-Limit": str(limits['per_minute']),
                        "X-RateLimit-Remaining": "0",
                    }
                )
        else:
            client_ip = self._get_client_ip(request)
            if not self._within_limits('ip', client_ip, DEFAULT_IP_LIMITS):
                logger.warning(f"Rate limit exceeded - IP: {client_ip}")
                return JSONResponse(
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    content={
                        "detail": "Rate limit exceeded. Please authenticate or try again later.",
                        "retry_after": 60
                    },
                    headers={"Retry-After": "60"}
                )

        response = await call_next(request)

        if user_id:
            limits = RATE_LIMITS.get(user_plan, RATE_LIMITS[DEFAULT_TIER])
            used = get_cache().get_int(self._minute_key('user', user_id)) or 0
            response.headers["X-RateLimit-Limit"] = str(limits['per_minute'])
            response.headers["X-RateLimit-Remaining"] = str(max(0, limits['per_minute'] - used))
            response.headers["X-RateLimit-Reset"] = str(
                int((datetime.now(timezone.utc).replace(second=0, microsecond=0) + timedelta(minutes=1)).timestamp()))

        return response

    def _identify(self, request: Request):
        """(user_id, plan_tier) from the bearer token, or (None, None)"""
        auth_header = request.headers.get('Authorization')
        if not auth_header or not auth_header.startswith('Bearer '):
            return None, None

        try:
            decoded_token = verify_firebase_token(auth_header.split(' ', 1)[1])
        except Exception as e:
            # The auth dependency rejects the request later
            logger.debug(f"Rate limit middleware: Could not verify token: {e}")
            return None, None

        user_id = decoded_token.get('uid')
        if not user_id:
            return None, None

        user_plan = DEFAULT_TIER
        db = SessionLocal()
        try:
            subscription = db.query(Subscription).filter(Subscription.user_id == user_id).first()
            if subscription:
                user_plan = subscription.plan_tier
        except SQLAlchemyError as e:
            logger.warning(f"Rate limit middleware: Could not load plan for {user_id}: {e}")
        finally:
            db.close()

        request.state.user_id = user_id
        request.state.user_plan = user_plan
        return user_id, user_plan

    def _get_client_ip(self, request: Request) -> str:
        """Extract client IP address from request"""
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip

        if request.client:
            return request.client.host

        return "unknown"

    def _within_limits(self, scope: str, ident: str, limits: dict) -> bool:
        cache = get_cache()

        minute_count = cache.incr(self._minute_key(scope, ident), ttl_seconds=60)
        if minute_count is not None and minute_count > limits['per_minute']:
            return False

        if limits['per_hour'] > 0:
            hour_count = cache.incr(self._hour_key(scope, ident), ttl_seconds=3600)
            if hour_count is not None and hour_count > limits['per_hour']:
                return False

        return True

    @staticmethod
    def _minute_key(scope: str, ident: str) -> str:
        stamp = datetime.utcnow().replace(second=0, microsecond=0).isoformat()
        return rate_limit_key(scope, ident, 'minute', stamp)

    @staticmethod
    def _hour_key(scope: str, ident: str) -> str:
        stamp = datetime.utcnow().replace(minute=0, second=0, microsecond=0).isoformat()
        return rate_limit_key(scope, ident, 'hour', stamp)
