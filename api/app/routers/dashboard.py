from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import get_identity
from app.core.identity import Identity
from app.schemas.dashboard import LandlordDashboard, TenantDashboard
from app.services.dashboard import build_dashboard

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("", response_model=LandlordDashboard | TenantDashboard)
async def get_dashboard(
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    return await build_dashboard(identity, db)
