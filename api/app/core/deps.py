import uuid

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.identity import Identity, LandlordIdentity, TenantIdentity, identity_for
from app.core.security import ACCESS, decode_token
from app.models.user import User


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _extract_token(request: Request) -> str | None:
    auth = request.headers.get("Authorization")
    if auth:
        scheme, _, credentials = auth.partition(" ")
        if scheme.lower() == "bearer" and credentials:
            return credentials.strip()
        return None
    # Browser clients authenticate with the httpOnly cookie set at login
    return request.cookies.get("access_token")


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User:
    token = _extract_token(request)
    if not token:
        raise _unauthorized("Not authenticated")

    token_data = decode_token(token, ACCESS)
    if token_data is None:
        raise _unauthorized("Invalid or expired token")

    try:
        user_id = uuid.UUID(str(token_data.get("sub")))
    except ValueError:
        raise _unauthorized("Invalid token subject")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        raise _unauthorized("User not found or inactive")
    return user


async def get_identity(user: User = Depends(get_current_user)) -> Identity:
    return identity_for(user)


async def get_landlord(identity: Identity = Depends(get_identity)) -> LandlordIdentity:
    return identity.as_landlord()


async def get_tenant(identity: Identity = Depends(get_identity)) -> TenantIdentity:
    return identity.as_tenant()
