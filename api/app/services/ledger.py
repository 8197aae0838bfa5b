"""
Billing ledger: the invoice / payment / receipt lifecycle.

    Invoice   PENDING ──approve(payment)──▶ PAID
                 │  └────overdue sweep────▶ OVERDUE ──approve(payment)──▶ PAID
                 └──cancel──▶ CANCELLED ◀──cancel── OVERDUE
    Payment   PENDING ──approve──▶ APPROVED   (terminal, mints one Receipt)
              PENDING ──reject───▶ REJECTED   (terminal, notes required)

Rules kept here:
  - an invoice is PAID exactly when one of its payments is APPROVED;
  - review transitions are compare-and-swap UPDATEs keyed on status=PENDING,
    so a concurrent second reviewer gets AlreadyProcessedError instead of
    overwriting the first decision;
  - approval, the invoice settlement and the receipt share the request
    transaction (commit/rollback happens in ``get_db``);
  - generation never creates two invoices for the same tenant/unit/period;
  - a stored proof file is deleted again if its transaction rolls back.

Every operation takes the request session plus the caller ``Identity`` and
only flushes.  Authorization happens once, at the top of each operation.
"""
import calendar
import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Update, event, exists, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import API_V1_PREFIX, settings
from app.core.database import utcnow
from app.core.exceptions import (
    AlreadyProcessedError,
    AuthorizationError,
    DuplicateGenerationError,
    EmptyBatchError,
    InvalidStateError,
    NotFoundError,
    ValidationFailedError,
)
from app.core.identity import Identity
from app.models.billing import (
    PAYABLE_INVOICE_STATUSES,
    Invoice,
    InvoiceStatus,
    Payment,
    PaymentStatus,
    Receipt,
)
from app.models.property import Property, Unit
from app.services.proof_storage import ProofStorage, ProofUpload, validate_proof

logger = logging.getLogger(__name__)

_MONTH_RE = re.compile(r"^(0[1-9]|1[0-2])$")
_YEAR_RE = re.compile(r"^[1-9]\d{3}$")

MAX_TRANSACTION_ID_LENGTH = 255
MAX_PAGE_SIZE = 200


# ─── Results ──────────────────────────────────────────────────────────────────

@dataclass
class UnitOutcome:
    unit_id: uuid.UUID
    tenant_id: uuid.UUID
    outcome: str  # created | skipped
    invoice_id: uuid.UUID | None = None


@dataclass
class GenerationReport:
    month: str
    year: str
    due_date: date
    created: list[Invoice] = field(default_factory=list)
    skipped_unit_ids: list[uuid.UUID] = field(default_factory=list)
    outcomes: list[UnitOutcome] = field(default_factory=list)


@dataclass
class SubmissionResult:
    payment: Payment
    created: bool  # False when a retry replayed an earlier submission


@dataclass
class ReviewResult:
    payment: Payment
    invoice: Invoice
    receipt: Receipt | None = None


@dataclass
class InvoicePage:
    invoices: list[Invoice]
    total: int
    page: int
    page_size: int

    @property
    def pages(self) -> int:
        return -(-self.total // self.page_size)


# ─── Helpers ──────────────────────────────────────────────────────────────────

def parse_period(month: str, year: str) -> tuple[int, int]:
    """Validate a ("MM", "YYYY") billing period and return it as integers."""
    if not isinstance(month, str) or not _MONTH_RE.match(month):
        raise ValidationFailedError(
            "month must be a zero-padded month from 01 to 12", field="month"
        )
    if not isinstance(year, str) or not _YEAR_RE.match(year):
        raise ValidationFailedError("year must be a 4-digit year", field="year")
    return int(month), int(year)


def due_date_for(month: int, year: int, due_day: int) -> date:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(due_day, last_day))


def _clean_notes(notes: str | None) -> str | None:
    if notes is None:
        return None
    return notes.strip() or None


async def _load_unit(db: AsyncSession, unit_id: uuid.UUID) -> tuple[Unit, uuid.UUID]:
    row = (
        await db.execute(
            select(Unit, Property.landlord_id)
            .join(Property, Unit.property_id == Property.id)
            .where(Unit.id == unit_id)
        )
    ).one_or_none()
    if row is None:
        raise NotFoundError("Unit", unit_id)
    return row[0], row[1]


async def _load_invoice(db: AsyncSession, invoice_id: uuid.UUID) -> tuple[Invoice, uuid.UUID]:
    """Fetch an invoice (fresh from the database) together with its landlord id."""
    row = (
        await db.execute(
            select(Invoice, Property.landlord_id)
            .join(Unit, Invoice.unit_id == Unit.id)
            .join(Property, Unit.property_id == Property.id)
            .where(Invoice.id == invoice_id)
            .execution_options(populate_existing=True)
        )
    ).one_or_none()
    if row is None:
        raise NotFoundError("Invoice", invoice_id)
    return row[0], row[1]


async def _load_payment(
    db: AsyncSession, payment_id: uuid.UUID
) -> tuple[Payment, Invoice, uuid.UUID]:
    row = (
        await db.execute(
            select(Payment, Invoice, Property.landlord_id)
            .join(Invoice, Payment.invoice_id == Invoice.id)
            .join(Unit, Invoice.unit_id == Unit.id)
            .join(Property, Unit.property_id == Property.id)
            .where(Payment.id == payment_id)
            .execution_options(populate_existing=True)
        )
    ).one_or_none()
    if row is None:
        raise NotFoundError("Payment", payment_id)
    return row[0], row[1], row[2]


# ─── Invoice generation ───────────────────────────────────────────────────────

async def generate_invoices(
    db: AsyncSession,
    identity: Identity,
    month: str,
    year: str,
    *,
    due_day: int | None = None,
) -> GenerationReport:
    """Create one PENDING invoice per occupied unit for the (month, year) period.

    Units that already have an invoice for the period are skipped and reported,
    so re-running a period only picks up newly occupied units.
    """
    landlord = identity.as_landlord()
    period_month, period_year = parse_period(month, year)
    due = due_date_for(period_month, period_year, due_day or settings.invoice_due_day)

    units = (
        await db.execute(
            select(Unit)
            .join(Property, Unit.property_id == Property.id)
            .where(
                Property.landlord_id == landlord.user_id,
                Unit.tenant_id.is_not(None),
            )
            .order_by(Property.name, Unit.unit_number)
        )
    ).scalars().all()
    if not units:
        raise EmptyBatchError(f"No occupied units to invoice for {month}/{year}")

    existing = {
        (row.tenant_id, row.unit_id)
        for row in (
            await db.execute(
                select(Invoice.tenant_id, Invoice.unit_id).where(
                    Invoice.unit_id.in_([u.id for u in units]),
                    Invoice.period_month == period_month,
                    Invoice.period_year == period_year,
                )
            )
        ).all()
    }

    report = GenerationReport(month=month, year=year, due_date=due)
    month_name = calendar.month_name[period_month]
    for unit in units:
        if (unit.tenant_id, unit.id) in existing:
            report.skipped_unit_ids.append(unit.id)
            report.outcomes.append(UnitOutcome(unit.id, unit.tenant_id, "skipped"))
            continue
        invoice = Invoice(
            id=uuid.uuid4(),
            tenant_id=unit.tenant_id,
            unit_id=unit.id,
            amount=unit.rent,
            due_date=due,
            status=InvoiceStatus.PENDING,
            description=f"Rent for {month_name} {period_year} - Unit {unit.unit_number}",
            period_month=period_month,
            period_year=period_year,
            payments=[],
        )
        db.add(invoice)
        report.created.append(invoice)
        report.outcomes.append(UnitOutcome(unit.id, unit.tenant_id, "created", invoice.id))

    if report.created:
        try:
            await db.flush()
        except IntegrityError as exc:
            # Another generation run for the same period committed first
            raise DuplicateGenerationError(
                f"Invoices for {month}/{year} were generated concurrently; "
                "retry to invoice any remaining units"
            ) from exc

    logger.info(
        "Generated invoices landlord=%s period=%s/%s created=%d skipped=%d",
        landlord.user_id, month, year, len(report.created), len(report.skipped_unit_ids),
    )
    return report


async def create_invoice(
    db: AsyncSession,
    identity: Identity,
    *,
    unit_id: uuid.UUID,
    amount: Decimal,
    due_date: date,
    description: str = "",
    period: tuple[str, str] | None = None,
) -> Invoice:
    """Manually bill the current tenant of a unit."""
    landlord = identity.as_landlord()
    if amount is None or amount <= 0:
        raise ValidationFailedError("amount must be positive", field="amount")

    unit, landlord_id = await _load_unit(db, unit_id)
    if landlord_id != landlord.user_id:
        raise AuthorizationError("Unit belongs to another landlord")
    if unit.tenant_id is None:
        raise InvalidStateError("Cannot invoice a vacant unit")

    period_month = period_year = None
    if period is not None:
        period_month, period_year = parse_period(*period)
        duplicate = (
            await db.execute(
                select(Invoice.id).where(
                    Invoice.tenant_id == unit.tenant_id,
                    Invoice.unit_id == unit.id,
                    Invoice.period_month == period_month,
                    Invoice.period_year == period_year,
                )
            )
        ).first()
        if duplicate is not None:
            raise DuplicateGenerationError(
                f"Unit {unit.unit_number} already has an invoice for {period[0]}/{period[1]}"
            )

    invoice = Invoice(
        id=uuid.uuid4(),
        tenant_id=unit.tenant_id,
        unit_id=unit.id,
        amount=amount,
        due_date=due_date,
        status=InvoiceStatus.PENDING,
        description=description,
        period_month=period_month,
        period_year=period_year,
        payments=[],
    )
    db.add(invoice)
    try:
        await db.flush()
    except IntegrityError as exc:
        raise DuplicateGenerationError("An invoice for this period already exists") from exc
    logger.info("Created invoice %s for unit %s", invoice.id, unit.id)
    return invoice


async def cancel_invoice(db: AsyncSession, identity: Identity, invoice_id: uuid.UUID) -> Invoice:
    landlord = identity.as_landlord()
    invoice, landlord_id = await _load_invoice(db, invoice_id)
    if landlord_id != landlord.user_id:
        raise AuthorizationError("Invoice belongs to another landlord")
    if invoice.status not in PAYABLE_INVOICE_STATUSES:
        raise InvalidStateError(
            f"Cannot cancel an invoice that is {invoice.status.value}", invoice.status.value
        )
    if any(p.status == PaymentStatus.PENDING for p in invoice.payments):
        raise InvalidStateError(
            "Review the pending payments before cancelling this invoice", invoice.status.value
        )

    result = await db.execute(
        update(Invoice)
        .where(Invoice.id == invoice.id, Invoice.status.in_(PAYABLE_INVOICE_STATUSES))
        .values(status=InvoiceStatus.CANCELLED, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.refresh(invoice)
        raise InvalidStateError(
            f"Cannot cancel an invoice that is {invoice.status.value}", invoice.status.value
        )
    await db.refresh(invoice)
    logger.info("Cancelled invoice %s", invoice.id)
    return invoice


# ─── Invoice queries ──────────────────────────────────────────────────────────

async def list_invoices(
    db: AsyncSession,
    identity: Identity,
    *,
    status: InvoiceStatus | None = None,
    page: int = 1,
    page_size: int = 50,
) -> InvoicePage:
    if page < 1 or not 1 <= page_size <= MAX_PAGE_SIZE:
        raise ValidationFailedError(
            f"page must be >= 1 and page_size between 1 and {MAX_PAGE_SIZE}"
        )
    stmt = identity.scope_invoices(select(Invoice))
    count_stmt = identity.scope_invoices(select(func.count(Invoice.id)))
    if status is not None:
        stmt = stmt.where(Invoice.status == status)
        count_stmt = count_stmt.where(Invoice.status == status)
    stmt = (
        stmt.order_by(Invoice.due_date.desc(), Invoice.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    invoices = list((await db.execute(stmt)).scalars().all())
    total = await db.scalar(count_stmt) or 0
    return InvoicePage(invoices=invoices, total=total, page=page, page_size=page_size)


async def get_invoice(db: AsyncSession, identity: Identity, invoice_id: uuid.UUID) -> Invoice:
    invoice, landlord_id = await _load_invoice(db, invoice_id)
    if not identity.can_view_invoice(invoice, landlord_id):
        raise AuthorizationError("You do not have access to this invoice")
    return invoice


# ─── Stored proof cleanup ─────────────────────────────────────────────────────

_STORED_PROOFS = "stored_proofs"


def _discard_on_rollback(
    db: AsyncSession, storage: ProofStorage, invoice_id: uuid.UUID, stored_name: str
) -> None:
    """Delete the file again unless the session's transaction commits."""
    session = db.sync_session
    if _STORED_PROOFS not in session.info:
        session.info[_STORED_PROOFS] = []
        event.listen(session, "after_commit", _forget_stored_proofs)
        event.listen(session, "after_rollback", _discard_stored_proofs)
    session.info[_STORED_PROOFS].append((storage, invoice_id, stored_name))


def _forget_stored_proofs(session) -> None:
    session.info[_STORED_PROOFS].clear()


def _discard_stored_proofs(session) -> None:
    for storage, invoice_id, stored_name in session.info[_STORED_PROOFS]:
        logger.info("Discarding proof %s after rollback", stored_name)
        storage.discard(invoice_id, stored_name)
    session.info[_STORED_PROOFS].clear()


# ─── Payment submission ───────────────────────────────────────────────────────

async def submit_payment(
    db: AsyncSession,
    identity: Identity,
    invoice_id: uuid.UUID,
    transaction_id: str,
    proof: ProofUpload | None = None,
    *,
    storage: ProofStorage | None = None,
    now: datetime | None = None,
) -> SubmissionResult:
    """Record a tenant's payment attempt for the full invoiced amount.

    Input (including the proof file) is validated before the database or the
    file store is touched.  The invoice status is left alone; only approval
    moves it.
    """
    tenant = identity.as_tenant()

    txn = (transaction_id or "").strip()
    if not txn:
        raise ValidationFailedError("transaction_id is required", field="transaction_id")
    if len(txn) > MAX_TRANSACTION_ID_LENGTH:
        raise ValidationFailedError(
            f"transaction_id must be at most {MAX_TRANSACTION_ID_LENGTH} characters",
            field="transaction_id",
        )
    mime = validate_proof(proof) if proof is not None else None

    invoice, _ = await _load_invoice(db, invoice_id)
    if invoice.tenant_id != tenant.user_id:
        raise AuthorizationError("You can only pay your own invoices")

    # A retried submission (same reference, not rejected) returns the original
    for earlier in invoice.payments:
        if earlier.transaction_id == txn and earlier.status != PaymentStatus.REJECTED:
            logger.info("Replayed payment %s for invoice %s", earlier.id, invoice.id)
            return SubmissionResult(payment=earlier, created=False)

    if invoice.status not in PAYABLE_INVOICE_STATUSES:
        raise InvalidStateError(
            f"Invoice is {invoice.status.value}; payments are not accepted",
            invoice.status.value,
        )

    payment_id = uuid.uuid4()
    stored_name = None
    if proof is not None:
        storage = storage or ProofStorage()
        stored_name = storage.save(invoice.id, payment_id, proof)

    payment = Payment(
        id=payment_id,
        invoice_id=invoice.id,
        tenant_id=tenant.user_id,
        amount=invoice.amount,
        transaction_id=txn,
        proof_url=f"{API_V1_PREFIX}/payments/{payment_id}/proof" if stored_name else None,
        proof_filename=stored_name,
        proof_content_type=mime,
        status=PaymentStatus.PENDING,
        submitted_at=now or utcnow(),
    )
    db.add(payment)
    if stored_name:
        _discard_on_rollback(db, storage, invoice.id, stored_name)
    await db.flush()

    logger.info("Payment %s submitted for invoice %s", payment.id, invoice.id)
    return SubmissionResult(payment=payment, created=True)


# ─── Payment review ───────────────────────────────────────────────────────────

async def _claim_pending(
    db: AsyncSession,
    payment: Payment,
    new_status: PaymentStatus,
    processed_at: datetime,
    notes: str | None,
) -> None:
    """Compare-and-swap PENDING -> new_status; losing the race raises."""
    result = await db.execute(
        update(Payment)
        .where(Payment.id == payment.id, Payment.status == PaymentStatus.PENDING)
        .values(status=new_status, processed_at=processed_at, notes=notes)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.refresh(payment)
        logger.warning(
            "Payment %s already %s; %s refused", payment.id, payment.status.value, new_status.value
        )
        raise AlreadyProcessedError(payment.id, payment.status.value)


async def approve_payment(
    db: AsyncSession,
    identity: Identity,
    payment_id: uuid.UUID,
    notes: str | None = None,
    *,
    now: datetime | None = None,
) -> ReviewResult:
    landlord = identity.as_landlord()
    now = now or utcnow()
    payment, invoice, landlord_id = await _load_payment(db, payment_id)
    if landlord_id != landlord.user_id:
        raise AuthorizationError("Payment belongs to another landlord's property")

    if payment.status != PaymentStatus.PENDING:
        raise AlreadyProcessedError(payment.id, payment.status.value)
    if invoice.status not in PAYABLE_INVOICE_STATUSES:
        raise InvalidStateError(
            f"Invoice is {invoice.status.value}; reject this payment instead",
            invoice.status.value,
        )

    await _claim_pending(db, payment, PaymentStatus.APPROVED, now, _clean_notes(notes))

    settled = await db.execute(
        update(Invoice)
        .where(Invoice.id == invoice.id, Invoice.status.in_(PAYABLE_INVOICE_STATUSES))
        .values(status=InvoiceStatus.PAID, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if settled.rowcount != 1:
        # Settled or cancelled concurrently; the request transaction rolls back
        await db.refresh(invoice)
        raise InvalidStateError(
            f"Invoice is {invoice.status.value}; reject this payment instead",
            invoice.status.value,
        )

    receipt_id = uuid.uuid4()
    receipt = Receipt(
        id=receipt_id,
        payment_id=payment.id,
        invoice_id=invoice.id,
        amount=payment.amount,
        issued_at=now,
        download_url=f"{API_V1_PREFIX}/receipts/{receipt_id}/download",
    )
    db.add(receipt)
    await db.flush()
    await db.refresh(payment)
    await db.refresh(invoice)

    logger.info(
        "Payment %s approved; invoice %s paid; receipt %s issued",
        payment.id, invoice.id, receipt.id,
    )
    return ReviewResult(payment=payment, invoice=invoice, receipt=receipt)


async def reject_payment(
    db: AsyncSession,
    identity: Identity,
    payment_id: uuid.UUID,
    notes: str | None,
    *,
    now: datetime | None = None,
) -> ReviewResult:
    landlord = identity.as_landlord()
    reason = _clean_notes(notes)
    if reason is None:
        raise ValidationFailedError("A reason is required to reject a payment", field="notes")

    payment, invoice, landlord_id = await _load_payment(db, payment_id)
    if landlord_id != landlord.user_id:
        raise AuthorizationError("Payment belongs to another landlord's property")
    if payment.status != PaymentStatus.PENDING:
        raise AlreadyProcessedError(payment.id, payment.status.value)

    await _claim_pending(db, payment, PaymentStatus.REJECTED, now or utcnow(), reason)
    await db.refresh(payment)

    logger.info("Payment %s rejected", payment.id)
    return ReviewResult(payment=payment, invoice=invoice)


# ─── Payment and receipt queries ──────────────────────────────────────────────

async def list_payments(
    db: AsyncSession,
    identity: Identity,
    *,
    status: PaymentStatus | None = None,
) -> list[Payment]:
    landlord = identity.as_landlord()
    stmt = landlord.scope_payments(select(Payment))
    if status is not None:
        stmt = stmt.where(Payment.status == status)
    stmt = stmt.order_by(Payment.submitted_at.desc())
    return list((await db.execute(stmt)).scalars().all())


async def get_payment(
    db: AsyncSession, identity: Identity, payment_id: uuid.UUID
) -> tuple[Payment, Invoice]:
    payment, invoice, landlord_id = await _load_payment(db, payment_id)
    if not identity.can_view_payment(payment, landlord_id):
        raise AuthorizationError("You do not have access to this payment")
    return payment, invoice


async def list_receipts(db: AsyncSession, identity: Identity) -> list[Receipt]:
    tenant = identity.as_tenant()
    stmt = tenant.scope_receipts(select(Receipt)).order_by(Receipt.issued_at.desc())
    return list((await db.execute(stmt)).scalars().all())


async def get_receipt(
    db: AsyncSession, identity: Identity, receipt_id: uuid.UUID
) -> tuple[Receipt, Payment, Invoice]:
    receipt = (
        await db.execute(select(Receipt).where(Receipt.id == receipt_id))
    ).scalar_one_or_none()
    if receipt is None:
        raise NotFoundError("Receipt", receipt_id)
    payment, invoice, landlord_id = await _load_payment(db, receipt.payment_id)
    if not identity.can_view_receipt(invoice, landlord_id):
        raise AuthorizationError("You do not have access to this receipt")
    return receipt, payment, invoice


async def find_receipt_for_payment(db: AsyncSession, payment_id: uuid.UUID) -> Receipt | None:
    return (
        await db.execute(select(Receipt).where(Receipt.payment_id == payment_id))
    ).scalar_one_or_none()


# ─── Overdue sweep ────────────────────────────────────────────────────────────

def overdue_sweep_statement(today: date) -> Update:
    """UPDATE moving unpaid PENDING invoices past their due date to OVERDUE.

    Shared by the async ledger and the sync Celery task.  Re-running it is a
    no-op because only PENDING rows match.
    """
    has_approved_payment = exists().where(
        Payment.invoice_id == Invoice.id,
        Payment.status == PaymentStatus.APPROVED,
    )
    return (
        update(Invoice)
        .where(
            Invoice.status == InvoiceStatus.PENDING,
            Invoice.due_date < today,
            ~has_approved_payment,
        )
        .values(status=InvoiceStatus.OVERDUE, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )


async def mark_overdue_invoices(db: AsyncSession, today: date | None = None) -> int:
    today = today or utcnow().date()
    result = await db.execute(overdue_sweep_statement(today))
    logger.info("Overdue sweep for %s marked %d invoice(s)", today, result.rowcount)
    return result.rowcount
