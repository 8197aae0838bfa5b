"""Render a receipt as a one-page PDF (fpdf2, built-in Helvetica)."""
from decimal import Decimal

from fpdf import FPDF
from fpdf.enums import XPos, YPos

from app.models.billing import Invoice, Payment, Receipt
from app.models.user import User


def _latin1(value: str) -> str:
    # Core PDF fonts only cover latin-1
    return value.encode("latin-1", "replace").decode("latin-1")


def _money(value: Decimal) -> str:
    return f"${value:,.2f}"


def receipt_lines(receipt: Receipt, payment: Payment, invoice: Invoice, tenant: User) -> list[tuple[str, str]]:
    lines = [
        ("Receipt", str(receipt.id)),
        ("Issued", receipt.issued_at.strftime("%Y-%m-%d %H:%M UTC")),
        ("Tenant", f"{tenant.full_name} <{tenant.email}>"),
        ("Invoice", str(invoice.id)),
        ("Description", invoice.description or "-"),
        ("Due date", invoice.due_date.isoformat()),
        ("Transaction", payment.transaction_id),
        ("Amount paid", _money(receipt.amount)),
    ]
    if payment.notes:
        lines.append(("Notes", payment.notes))
    return lines


def render_receipt_pdf(receipt: Receipt, payment: Payment, invoice: Invoice, tenant: User) -> bytes:
    pdf = FPDF()
    pdf.set_title(_latin1(f"Receipt {receipt.id}"))
    pdf.add_page()

    pdf.set_font("helvetica", "B", 18)
    pdf.cell(0, 12, "Payment Receipt", new_x=XPos.LMARGIN, new_y=YPos.NEXT, align="C")
    pdf.ln(4)

    pdf.set_font("helvetica", size=11)
    for label, value in receipt_lines(receipt, payment, invoice, tenant):
        pdf.set_font("helvetica", "B", 11)
        pdf.cell(40, 8, f"{label}:", new_x=XPos.RIGHT, new_y=YPos.TOP)
        pdf.set_font("helvetica", size=11)
        pdf.multi_cell(0, 8, _latin1(value), new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    pdf.ln(6)
    pdf.set_font("helvetica", "I", 9)
    pdf.cell(0, 6, "This receipt confirms the landlord approved the payment above.",
             new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    return bytes(pdf.output())
