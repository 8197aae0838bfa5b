import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import get_landlord
from app.core.exceptions import InvalidStateError, NotFoundError, ValidationFailedError
from app.core.identity import LandlordIdentity
from app.models.billing import Invoice
from app.models.property import Property, Unit
from app.models.user import User, UserRole
from app.schemas.property import (
    PropertyCreate,
    PropertyResponse,
    PropertyUpdate,
    TenantAssignment,
    TenantSummary,
    UnitCreate,
    UnitResponse,
    UnitUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["properties"])


# ─── Helper: verify property ownership ──────────────────────────────────────

async def _get_property(
    property_id: uuid.UUID,
    landlord: LandlordIdentity,
    db: AsyncSession,
) -> Property:
    result = await db.execute(
        select(Property).where(
            Property.id == property_id,
            Property.landlord_id == landlord.user_id,
        )
    )
    prop = result.scalar_one_or_none()
    if not prop:
        raise HTTPException(status_code=404, detail="Property not found")
    return prop


async def _get_unit(
    unit_id: uuid.UUID,
    landlord: LandlordIdentity,
    db: AsyncSession,
) -> Unit:
    result = await db.execute(
        select(Unit)
        .join(Property, Unit.property_id == Property.id)
        .where(Unit.id == unit_id, Property.landlord_id == landlord.user_id)
    )
    unit = result.scalar_one_or_none()
    if not unit:
        raise HTTPException(status_code=404, detail="Unit not found")
    return unit


async def _find_tenant(email: str, db: AsyncSession) -> User:
    result = await db.execute(select(User).where(User.email == email.lower()))
    tenant = result.scalar_one_or_none()
    if tenant is None or not tenant.is_active:
        raise NotFoundError("Tenant", email)
    if tenant.role != UserRole.TENANT:
        raise ValidationFailedError(
            "Only tenant accounts can be assigned to a unit", field="tenant_email"
        )
    return tenant


def _apply_update(obj, payload) -> None:
    """Copy the fields a PATCH body sets; NOT NULL columns refuse an explicit null."""
    columns = type(obj).__table__.c
    for field, value in payload.model_dump(exclude_unset=True).items():
        if value is None and not columns[field].nullable:
            raise ValidationFailedError(f"{field} cannot be null", field=field)
        setattr(obj, field, value)


# ─── Properties ──────────────────────────────────────────────────────────────

@router.get("/properties", response_model=list[PropertyResponse])
async def list_properties(
    landlord: LandlordIdentity = Depends(get_landlord),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Property)
        .where(Property.landlord_id == landlord.user_id)
        .order_by(Property.name)
    )
    return result.scalars().all()


@router.post("/properties", response_model=PropertyResponse, status_code=201)
async def create_property(
    payload: PropertyCreate,
    landlord: LandlordIdentity = Depends(get_landlord),
    db: AsyncSession = Depends(get_db),
):
    prop = Property(landlord_id=landlord.user_id, units=[], **payload.model_dump())
    db.add(prop)
    await db.flush()
    await db.refresh(prop)
    return prop


@router.get("/properties/{property_id}", response_model=PropertyResponse)
async def get_property(
    property_id: uuid.UUID,
    landlord: LandlordIdentity = Depends(get_landlord),
    db: AsyncSession = Depends(get_db),
):
    return await _get_property(property_id, landlord, db)


@router.patch("/properties/{property_id}", response_model=PropertyResponse)
async def update_property(
    property_id: uuid.UUID,
    payload: PropertyUpdate,
    landlord: LandlordIdentity = Depends(get_landlord),
    db: AsyncSession = Depends(get_db),
):
    prop = await _get_property(property_id, landlord, db)
    _apply_update(prop, payload)
    await db.flush()
    await db.refresh(prop)
    return prop


@router.delete("/properties/{property_id}", status_code=204)
async def delete_property(
    property_id: uuid.UUID,
    landlord: LandlordIdentity = Depends(get_landlord),
    db: AsyncSession = Depends(get_db),
):
    prop = await _get_property(property_id, landlord, db)
    if prop.units:
        raise InvalidStateError("Remove the property's units before deleting it")
    await db.delete(prop)


# ─── Units ───────────────────────────────────────────────────────────────────

@router.post("/properties/{property_id}/units", response_model=UnitResponse, status_code=201)
async def create_unit(
    property_id: uuid.UUID,
    payload: UnitCreate,
    landlord: LandlordIdentity = Depends(get_landlord),
    db: AsyncSession = Depends(get_db),
):
    prop = await _get_property(property_id, landlord, db)
    data = payload.model_dump(exclude={"tenant_email"})
    tenant = await _find_tenant(payload.tenant_email, db) if payload.tenant_email else None

    unit = Unit(property_id=prop.id, tenant_id=tenant.id if tenant else None, **data)
    db.add(unit)
    await db.flush()
    await db.refresh(unit)
    return unit


@router.patch("/units/{unit_id}", response_model=UnitResponse)
async def update_unit(
    unit_id: uuid.UUID,
    payload: UnitUpdate,
    landlord: LandlordIdentity = Depends(get_landlord),
    db: AsyncSession = Depends(get_db),
):
    unit = await _get_unit(unit_id, landlord, db)
    # Rent changes apply to future invoices only; issued amounts never move
    _apply_update(unit, payload)
    await db.flush()
    await db.refresh(unit)
    return unit


@router.put("/units/{unit_id}/tenant", response_model=UnitResponse)
async def assign_tenant(
    unit_id: uuid.UUID,
    payload: TenantAssignment,
    landlord: LandlordIdentity = Depends(get_landlord),
    db: AsyncSession = Depends(get_db),
):
    unit = await _get_unit(unit_id, landlord, db)
    if payload.tenant_email:
        tenant = await _find_tenant(payload.tenant_email, db)
        unit.tenant_id = tenant.id
        logger.info("Unit %s assigned to tenant %s", unit.id, tenant.id)
    else:
        unit.tenant_id = None
        logger.info("Unit %s vacated", unit.id)
    await db.flush()
    await db.refresh(unit)
    return unit


@router.delete("/units/{unit_id}", status_code=204)
async def delete_unit(
    unit_id: uuid.UUID,
    landlord: LandlordIdentity = Depends(get_landlord),
    db: AsyncSession = Depends(get_db),
):
    unit = await _get_unit(unit_id, landlord, db)
    if unit.tenant_id is not None:
        raise InvalidStateError("Vacate the unit before deleting it")
    invoiced = await db.scalar(select(exists().where(Invoice.unit_id == unit.id)))
    if invoiced:
        raise InvalidStateError("Units with billing history cannot be deleted")
    await db.delete(unit)


# ─── Tenants ─────────────────────────────────────────────────────────────────

@router.get("/tenants", response_model=list[TenantSummary])
async def list_tenants(
    landlord: LandlordIdentity = Depends(get_landlord),
    db: AsyncSession = Depends(get_db),
):
    """Tenants currently occupying one of the landlord's units, one row per unit."""
    result = await db.execute(
        select(User, Unit, Property)
        .join(Unit, Unit.tenant_id == User.id)
        .join(Property, Unit.property_id == Property.id)
        .where(Property.landlord_id == landlord.user_id)
        .order_by(User.last_name, User.first_name, Unit.unit_number)
    )
    return [
        TenantSummary(
            id=user.id,
            email=user.email,
            full_name=user.full_name,
            phone=user.phone,
            property_id=prop.id,
            property_name=prop.name,
            unit_id=unit.id,
            unit_number=unit.unit_number,
            rent=unit.rent,
        )
        for user, unit, prop in result.all()
    ]
