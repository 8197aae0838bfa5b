"""Role-specific dashboard figures, dispatched on the caller's identity type."""
from datetime import datetime
from decimal import Decimal
from functools import singledispatch

from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import utcnow
from app.core.exceptions import AuthorizationError
from app.core.identity import Identity, LandlordIdentity, TenantIdentity
from app.models.billing import PAYABLE_INVOICE_STATUSES, Invoice, InvoiceStatus, Payment, PaymentStatus
from app.models.property import Property, Unit
from app.schemas.billing import InvoiceResponse, PaymentResponse
from app.schemas.dashboard import LandlordDashboard, TenantDashboard

RECENT_LIMIT = 5


def _month_start(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


@singledispatch
async def build_dashboard(identity: Identity, db: AsyncSession, now: datetime | None = None):
    raise AuthorizationError("No dashboard is available for this account")


@build_dashboard.register
async def _(identity: LandlordIdentity, db: AsyncSession, now: datetime | None = None) -> LandlordDashboard:
    now = now or utcnow()
    landlord_id = identity.user_id

    total_properties = await db.scalar(
        select(func.count(Property.id)).where(Property.landlord_id == landlord_id)
    )
    unit_counts = (
        await db.execute(
            select(
                func.count(Unit.id),
                func.count(Unit.tenant_id),
                func.count(distinct(Unit.tenant_id)),
            )
            .join(Property, Unit.property_id == Property.id)
            .where(Property.landlord_id == landlord_id)
        )
    ).one()
    total_units, occupied_units, total_tenants = unit_counts

    monthly_revenue = await db.scalar(
        identity.scope_payments(select(func.coalesce(func.sum(Payment.amount), 0))).where(
            Payment.status == PaymentStatus.APPROVED,
            Payment.processed_at >= _month_start(now),
        )
    )
    pending_payments = await db.scalar(
        identity.scope_payments(select(func.count(Payment.id))).where(
            Payment.status == PaymentStatus.PENDING
        )
    )
    overdue_invoices = await db.scalar(
        identity.scope_invoices(select(func.count(Invoice.id))).where(
            Invoice.status == InvoiceStatus.OVERDUE
        )
    )
    recent = (
        await db.execute(
            identity.scope_payments(select(Payment))
            .order_by(Payment.submitted_at.desc())
            .limit(RECENT_LIMIT)
        )
    ).scalars().all()

    return LandlordDashboard(
        total_properties=total_properties or 0,
        total_units=total_units,
        total_tenants=total_tenants,
        occupancy_rate=round(occupied_units / total_units * 100, 1) if total_units else 0.0,
        monthly_revenue=Decimal(monthly_revenue or 0),
        pending_payments=pending_payments or 0,
        overdue_invoices=overdue_invoices or 0,
        recent_payments=[PaymentResponse.model_validate(p) for p in recent],
    )


@build_dashboard.register
async def _(identity: TenantIdentity, db: AsyncSession, now: datetime | None = None) -> TenantDashboard:
    now = now or utcnow()
    tenant_id = identity.user_id

    total_due = await db.scalar(
        select(func.coalesce(func.sum(Invoice.amount), 0)).where(
            Invoice.tenant_id == tenant_id,
            Invoice.status.in_(PAYABLE_INVOICE_STATUSES),
        )
    )
    paid_this_month = await db.scalar(
        select(func.coalesce(func.sum(Payment.amount), 0)).where(
            Payment.tenant_id == tenant_id,
            Payment.status == PaymentStatus.APPROVED,
            Payment.processed_at >= _month_start(now),
        )
    )
    pending_payments = await db.scalar(
        select(func.count(Payment.id)).where(
            Payment.tenant_id == tenant_id, Payment.status == PaymentStatus.PENDING
        )
    )
    overdue_invoices = await db.scalar(
        select(func.count(Invoice.id)).where(
            Invoice.tenant_id == tenant_id, Invoice.status == InvoiceStatus.OVERDUE
        )
    )
    recent_invoices = (
        await db.execute(
            select(Invoice)
            .where(Invoice.tenant_id == tenant_id)
            .order_by(Invoice.due_date.desc())
            .limit(RECENT_LIMIT)
        )
    ).scalars().all()
    recent_payments = (
        await db.execute(
            select(Payment)
            .where(Payment.tenant_id == tenant_id)
            .order_by(Payment.submitted_at.desc())
            .limit(RECENT_LIMIT)
        )
    ).scalars().all()

    return TenantDashboard(
        total_due=Decimal(total_due or 0),
        paid_this_month=Decimal(paid_this_month or 0),
        pending_payments=pending_payments or 0,
        overdue_invoices=overdue_invoices or 0,
        recent_invoices=[InvoiceResponse.model_validate(i) for i in recent_invoices],
        recent_payments=[PaymentResponse.model_validate(p) for p in recent_payments],
    )
