import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import get_identity
from app.core.identity import Identity
from app.models.billing import InvoiceStatus
from app.schemas.billing import (
    GenerationReportResponse,
    InvoiceCreate,
    InvoiceDetailResponse,
    InvoiceGenerateRequest,
    InvoicePageResponse,
    InvoiceResponse,
    UnitOutcomeResponse,
)
from app.services import ledger

router = APIRouter(prefix="/invoices", tags=["invoices"])


@router.post("/generate", response_model=GenerationReportResponse, status_code=201)
async def generate_invoices(
    payload: InvoiceGenerateRequest,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    report = await ledger.generate_invoices(
        db, identity, payload.month, payload.year, due_day=payload.due_day
    )
    return GenerationReportResponse(
        month=report.month,
        year=report.year,
        due_date=report.due_date,
        created_count=len(report.created),
        skipped_count=len(report.skipped_unit_ids),
        invoices=[InvoiceResponse.model_validate(i) for i in report.created],
        skipped_unit_ids=report.skipped_unit_ids,
        outcomes=[
            UnitOutcomeResponse(
                unit_id=o.unit_id, tenant_id=o.tenant_id, outcome=o.outcome, invoice_id=o.invoice_id
            )
            for o in report.outcomes
        ],
    )


@router.post("", response_model=InvoiceResponse, status_code=201)
async def create_invoice(
    payload: InvoiceCreate,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    period = (payload.month, payload.year) if payload.month or payload.year else None
    return await ledger.create_invoice(
        db,
        identity,
        unit_id=payload.unit_id,
        amount=payload.amount,
        due_date=payload.due_date,
        description=payload.description,
        period=period,
    )


@router.get("", response_model=InvoicePageResponse)
async def list_invoices(
    status: InvoiceStatus | None = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=ledger.MAX_PAGE_SIZE),
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    result = await ledger.list_invoices(
        db, identity, status=status, page=page, page_size=page_size
    )
    return InvoicePageResponse(
        invoices=[InvoiceResponse.model_validate(i) for i in result.invoices],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        pages=result.pages,
    )


@router.get("/{invoice_id}", response_model=InvoiceDetailResponse)
async def get_invoice(
    invoice_id: uuid.UUID,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    return await ledger.get_invoice(db, identity, invoice_id)


@router.post("/{invoice_id}/cancel", response_model=InvoiceResponse)
async def cancel_invoice(
    invoice_id: uuid.UUID,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    return await ledger.cancel_invoice(db, identity, invoice_id)
