import uuid

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import get_identity
from app.core.exceptions import NotFoundError
from app.core.identity import Identity
from app.models.user import User
from app.schemas.billing import ReceiptResponse
from app.services import ledger
from app.services.receipt_pdf import render_receipt_pdf

router = APIRouter(prefix="/receipts", tags=["receipts"])


@router.get("", response_model=list[ReceiptResponse])
async def list_receipts(
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    return await ledger.list_receipts(db, identity)


@router.get("/{receipt_id}", response_model=ReceiptResponse)
async def get_receipt(
    receipt_id: uuid.UUID,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    receipt, _, _ = await ledger.get_receipt(db, identity, receipt_id)
    return receipt


@router.get("/{receipt_id}/download")
async def download_receipt(
    receipt_id: uuid.UUID,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    receipt, payment, invoice = await ledger.get_receipt(db, identity, receipt_id)
    tenant = await db.get(User, invoice.tenant_id)
    if tenant is None:
        raise NotFoundError("Tenant", invoice.tenant_id)

    content = render_receipt_pdf(receipt, payment, invoice, tenant)
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="receipt-{receipt.id}.pdf"'},
    )
