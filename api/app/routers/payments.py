import uuid

from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import get_identity
from app.core.identity import Identity
from app.models.billing import PaymentStatus
from app.schemas.billing import (
    ApprovalResponse,
    InvoiceResponse,
    PaymentDetailResponse,
    PaymentResponse,
    ReceiptResponse,
    ReviewRequest,
)
from app.services import ledger
from app.services.proof_storage import (
    CHUNK_SIZE,
    ProofStorage,
    ProofUpload,
    check_size,
    get_proof_storage,
)

router = APIRouter(prefix="/payments", tags=["payments"])


async def _read_upload(file: UploadFile) -> ProofUpload:
    # Stream in chunks so an oversized upload is refused without buffering all of it
    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = await file.read(CHUNK_SIZE)
        if not chunk:
            break
        total += len(chunk)
        check_size(total)
        chunks.append(chunk)
    return ProofUpload(
        filename=file.filename or "proof",
        content_type=file.content_type,
        content=b"".join(chunks),
    )


# ─── Submit ───────────────────────────────────────────────────────────────────

@router.post("", response_model=PaymentResponse, status_code=201)
async def submit_payment(
    response: Response,
    invoice_id: uuid.UUID = Form(...),
    transaction_id: str = Form(...),
    proof_file: UploadFile | None = File(None),
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
    storage: ProofStorage = Depends(get_proof_storage),
):
    identity.as_tenant()
    proof = await _read_upload(proof_file) if proof_file is not None else None
    result = await ledger.submit_payment(
        db, identity, invoice_id, transaction_id, proof, storage=storage
    )
    if not result.created:
        response.status_code = 200
    return result.payment


# ─── Queries ──────────────────────────────────────────────────────────────────

@router.get("", response_model=list[PaymentResponse])
async def list_payments(
    status: PaymentStatus | None = None,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    return await ledger.list_payments(db, identity, status=status)


@router.get("/{payment_id}", response_model=PaymentDetailResponse)
async def get_payment(
    payment_id: uuid.UUID,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    payment, invoice = await ledger.get_payment(db, identity, payment_id)
    return PaymentDetailResponse(
        **PaymentResponse.model_validate(payment).model_dump(),
        invoice=InvoiceResponse.model_validate(invoice),
    )


@router.get("/{payment_id}/proof")
async def download_proof(
    payment_id: uuid.UUID,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
    storage: ProofStorage = Depends(get_proof_storage),
):
    payment, invoice = await ledger.get_payment(db, identity, payment_id)
    if not payment.proof_filename:
        raise HTTPException(status_code=404, detail="No proof was attached to this payment")

    file_path = storage.path_for(invoice.id, payment.proof_filename)
    if not file_path.exists():
        raise HTTPException(status_code=404, detail="File not found on disk")

    return FileResponse(
        path=str(file_path),
        filename=payment.proof_filename,
        media_type=payment.proof_content_type or "application/octet-stream",
    )


# ─── Review ───────────────────────────────────────────────────────────────────

@router.post("/{payment_id}/approve", response_model=ApprovalResponse)
async def approve_payment(
    payment_id: uuid.UUID,
    payload: ReviewRequest | None = None,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    result = await ledger.approve_payment(
        db, identity, payment_id, payload.notes if payload else None
    )
    return ApprovalResponse(
        payment=PaymentResponse.model_validate(result.payment),
        invoice=InvoiceResponse.model_validate(result.invoice),
        receipt=ReceiptResponse.model_validate(result.receipt),
    )


@router.post("/{payment_id}/reject", response_model=PaymentResponse)
async def reject_payment(
    payment_id: uuid.UUID,
    payload: ReviewRequest,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    result = await ledger.reject_payment(db, identity, payment_id, payload.notes)
    return result.payment
