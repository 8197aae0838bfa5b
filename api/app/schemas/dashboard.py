from decimal import Decimal

from pydantic import BaseModel

from app.schemas.billing import InvoiceResponse, PaymentResponse


class LandlordDashboard(BaseModel):
    total_properties: int
    total_units: int
    total_tenants: int
    occupancy_rate: float  # percent of units with a tenant
    monthly_revenue: Decimal  # approved payments processed this calendar month
    pending_payments: int
    overdue_invoices: int
    recent_payments: list[PaymentResponse]


class TenantDashboard(BaseModel):
    total_due: Decimal  # PENDING + OVERDUE invoices
    paid_this_month: Decimal
    pending_payments: int
    overdue_invoices: int
    recent_invoices: list[InvoiceResponse]
    recent_payments: list[PaymentResponse]
