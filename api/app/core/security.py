import uuid
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext

from app.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ACCESS = "access"
REFRESH = "refresh"


# ─── Password hashing ──────────────────────────────────
def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


# ─── JWT tokens ────────────────────────────────────────
def _encode(claims: dict, token_type: str, lifetime: timedelta) -> str:
    payload = {
        **claims,
        "type": token_type,
        "iat": datetime.now(timezone.utc),
        "exp": datetime.now(timezone.utc) + lifetime,
    }
    return jwt.encode(payload, settings.api_secret_key, algorithm=settings.algorithm)


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    return _encode(data, ACCESS, lifetime)


def create_refresh_token(data: dict) -> str:
    # jti lets logout/rotation revoke this exact token in Redis
    return _encode(
        {**data, "jti": uuid.uuid4().hex},
        REFRESH,
        timedelta(days=settings.refresh_token_expire_days),
    )


def decode_token(token: str, expected_type: str | None = None) -> dict | None:
    """Verify signature and expiry; None for anything invalid or of the wrong type."""
    try:
        data = jwt.decode(token, settings.api_secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
    if expected_type is not None and data.get("type") != expected_type:
        return None
    return data


def token_ttl_seconds(token_data: dict) -> int:
    """Seconds left before a decoded token expires (never negative)."""
    exp = token_data.get("exp", 0)
    return max(0, int(exp - datetime.now(timezone.utc).timestamp()))
