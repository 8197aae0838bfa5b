import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from app.models.billing import InvoiceStatus, PaymentStatus


# ─── Invoices ───────────────────────────────────────────────────────────────────

class InvoiceGenerateRequest(BaseModel):
    # Kept as strings: the period format ("MM", "YYYY") is checked by the ledger
    month: str
    year: str
    due_day: int | None = Field(default=None, ge=1, le=28)


class InvoiceCreate(BaseModel):
    unit_id: uuid.UUID
    amount: Decimal = Field(gt=0)
    due_date: date
    description: str = ""
    month: str | None = None
    year: str | None = None


class InvoiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    tenant_id: uuid.UUID
    unit_id: uuid.UUID
    amount: Decimal
    due_date: date
    status: InvoiceStatus
    description: str
    period_month: int | None
    period_year: int | None
    created_at: datetime
    updated_at: datetime


class InvoicePageResponse(BaseModel):
    invoices: list[InvoiceResponse]
    total: int
    page: int
    page_size: int
    pages: int


class UnitOutcomeResponse(BaseModel):
    unit_id: uuid.UUID
    tenant_id: uuid.UUID
    outcome: str
    invoice_id: uuid.UUID | None = None


class GenerationReportResponse(BaseModel):
    month: str
    year: str
    due_date: date
    created_count: int
    skipped_count: int
    invoices: list[InvoiceResponse]
    skipped_unit_ids: list[uuid.UUID]
    outcomes: list[UnitOutcomeResponse]


# ─── Payments ───────────────────────────────────────────────────────────────────

class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    invoice_id: uuid.UUID
    tenant_id: uuid.UUID
    amount: Decimal
    transaction_id: str
    proof_url: str | None
    status: PaymentStatus
    submitted_at: datetime
    processed_at: datetime | None
    notes: str | None


class InvoiceDetailResponse(InvoiceResponse):
    payments: list[PaymentResponse] = []


class PaymentDetailResponse(PaymentResponse):
    invoice: InvoiceResponse


class ReviewRequest(BaseModel):
    notes: str | None = Field(default=None, max_length=2000)


# ─── Receipts ───────────────────────────────────────────────────────────────────

class ReceiptResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    payment_id: uuid.UUID
    invoice_id: uuid.UUID
    amount: Decimal
    issued_at: datetime
    download_url: str


class ApprovalResponse(BaseModel):
    payment: PaymentResponse
    invoice: InvoiceResponse
    receipt: ReceiptResponse
