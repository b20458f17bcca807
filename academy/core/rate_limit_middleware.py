from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp
from academy.core.config import settings
from academy.core.database import SessionLocal
from academy.core.middleware import extract_token
from academy.core.security import verify_access_token
from academy.core.cache import get_cache, rate_limit_key
from academy.models.plan import SubscriptionPlan
from academy.models.subscription import SubscriptionStatus, UserSubscription
from datetime import datetime, timedelta
from typing import Optional
import logging

logger = logging.getLogger(__name__)

# Rate limit configuration per plan
RATE_LIMITS = {
    'free': {
        'per_minute': 60,
        'per_hour': 1000,
    },
    'basic': {
        'per_minute': 90,
        'per_hour': 2000,
    },
    'pro': {
        'per_minute': 120,
        'per_hour': 5000,
    },
    'elite': {
        'per_minute': 240,
        'per_hour': 10000,
    },
}

# Default rate limits for unauthenticated requests (IP-based)
DEFAULT_IP_LIMITS = {
    'per_minute': 30,
    'per_hour': 500,
}

SKIPPED_PATHS = {'/health', '/docs', '/openapi.json', '/redoc'}


def _too_many_requests(detail: str, limit: Optional[int] = None) -> JSONResponse:
    headers = {"Retry-After": "60"}
    if limit is not None:
        headers["X-RateLimit-Limit"] = str(limit)
        headers["X-RateLimit-Remaining"] = "0"
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"detail": detail, "retry_after": 60},
        headers=headers
    )


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Rate limiting keyed on the signed-in user's plan, or on the client IP
    for anonymous requests. Counters live in Redis; when Redis is down every
    request is let through.
    """

    def __init__(self, app: ASGIApp, enabled: Optional[bool] = None):
        super().__init__(app)
        self.enabled = settings.rate_limit_enabled if enabled is None else enabled
        self.cache = get_cache()

    async def dispatch(self, request: Request, call_next):
        if not self.enabled or request.url.path in SKIPPED_PATHS:
            return await call_next(request)

        # Webhooks are authenticated by signature and retried by the provider
        if request.url.path.startswith(f"{settings.api_v1_str}/webhooks"):
            return await call_next(request)

        user_id = None
        user_plan = None
        token = extract_token(request)
        if token:
            try:
                user_id = verify_access_token(token)['sub']
                user_plan = self._get_user_plan(user_id)
                request.state.user_id = user_id
                request.state.user_plan = user_plan
            except Exception as e:
                # The auth dependency reports bad tokens; fall back to IP limits here
                logger.debug(f"Rate limit middleware: Could not verify token: {e}")
                user_id = None

        if user_id:
            limits = RATE_LIMITS.get(user_plan, RATE_LIMITS['free'])
            if not self._check_limits('user', user_id, limits):
                return _too_many_requests(
                    f"Rate limit exceeded. Your {user_plan or 'free'} plan allows "
                    f"{limits['per_minute']} requests per minute. Please try again later.",
                    limit=limits['per_minute']
                )
        else:
            client_ip = self._get_client_ip(request)
            if not self._check_limits('ip', client_ip, DEFAULT_IP_LIMITS):
                return _too_many_requests("Rate limit exceeded. Please sign in or try again later.")

        response = await call_next(request)

        if user_id:
            limits = RATE_LIMITS.get(user_plan, RATE_LIMITS['free'])
            used = self.cache.get_int(rate_limit_key('user', user_id, 'minute')) or 0
            response.headers["X-RateLimit-Limit"] = str(limits['per_minute'])
            response.headers["X-RateLimit-Remaining"] = str(max(0, limits['per_minute'] - used))
            response.headers["X-RateLimit-Reset"] = str(int((datetime.utcnow() + timedelta(minutes=1)).timestamp()))

        return response

    def _get_user_plan(self, user_id: str) -> Optional[str]:
        """Name of the plan on the user's newest active subscription"""
        db = SessionLocal()
        try:
            row = (
                db.query(SubscriptionPlan.name)
                .join(UserSubscription, UserSubscription.plan_id == SubscriptionPlan.id)
                .filter(
                    UserSubscription.user_id == user_id,
                    UserSubscription.status == SubscriptionStatus.ACTIVE
                )
                .order_by(UserSubscription.created_at.desc())
                .first()
            )
            return row[0] if row else None
        finally:
            db.close()

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

    def _check_limits(self, scope: str, ident: str, limits: dict) -> bool:
        """Count this request against the minute and hour windows; False when either is full"""
        now = datetime.utcnow()
        minute_key = rate_limit_key(scope, ident, 'minute', now)
        hour_key = rate_limit_key(scope, ident, 'hour', now)

        minute_count = self.cache.get_int(minute_key) or 0
        if minute_count >= limits['per_minute']:
            logger.warning(f"Rate limit exceeded (per minute) - {scope}: {ident}")
            return False

        hour_count = self.cache.get_int(hour_key) or 0
        if hour_count >= limits['per_hour']:
            logger.warning(f"Rate limit exceeded (per hour) - {scope}: {ident}")
            return False

        if self.cache.incr(minute_key) == 1:
            self.cache.expire(minute_key, 60)
        if self.cache.incr(hour_key) == 1:
            self.cache.expire(hour_key, 3600)
        return True
