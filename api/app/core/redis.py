import redis.asyncio as aioredis

from app.core.config import settings

# Shared async Redis client (created lazily, reused across requests)
_redis: aioredis.Redis | None = None


def get_redis() -> aioredis.Redis:
    global _redis
    if _redis is None:
        _redis = aioredis.from_url(settings.redis_url, decode_responses=True)
    return _redis


# ─── Refresh-token revocation ──────────────────────────────────────────────────

_REVOKED_PREFIX = "bizrent:revoked_jti:"


async def revoke_token(jti: str, ttl_seconds: int) -> None:
    """Mark a refresh token as revoked for the rest of its lifetime."""
    if ttl_seconds > 0:
        await get_redis().setex(f"{_REVOKED_PREFIX}{jti}", ttl_seconds, "1")


async def is_revoked(jti: str) -> bool:
    return await get_redis().exists(f"{_REVOKED_PREFIX}{jti}") == 1


# ─── Login lockout ─────────────────────────────────────────────────────────────

_FAIL_PREFIX = "bizrent:login_fails:"
LOCKOUT_SECONDS = 15 * 60
MAX_LOGIN_ATTEMPTS = 5


async def record_login_failure(email: str) -> int:
    """Increment the failure counter; the first failure opens the lockout window."""
    r = get_redis()
    key = f"{_FAIL_PREFIX}{email.lower()}"
    count = await r.incr(key)
    if count == 1:
        await r.expire(key, LOCKOUT_SECONDS)
    return count


async def is_locked_out(email: str) -> bool:
    count = await get_redis().get(f"{_FAIL_PREFIX}{email.lower()}")
    return int(count) >= MAX_LOGIN_ATTEMPTS if count else False


async def clear_login_failures(email: str) -> None:
    await get_redis().delete(f"{_FAIL_PREFIX}{email.lower()}")
