"""
Caller identity for ledger operations.

The ledger never branches on ``user.role`` itself.  Each request resolves the
authenticated user into a ``LandlordIdentity`` or ``TenantIdentity``; the
identity answers capability checks (``as_landlord`` / ``as_tenant``),
ownership questions for loaded entities, and narrows queries to the rows the
caller may see.
"""
import uuid
from abc import ABC, abstractmethod

from sqlalchemy import Select

from app.core.exceptions import AuthorizationError
from app.models.billing import Invoice, Payment, Receipt
from app.models.property import Property, Unit
from app.models.user import User, UserRole


class Identity(ABC):
    role: UserRole

    def __init__(self, user: User):
        self.user = user

    @property
    def user_id(self) -> uuid.UUID:
        return self.user.id

    def as_landlord(self) -> "LandlordIdentity":
        raise AuthorizationError("This action requires a landlord account")

    def as_tenant(self) -> "TenantIdentity":
        raise AuthorizationError("This action requires a tenant account")

    @abstractmethod
    def can_view_invoice(self, invoice: Invoice, landlord_id: uuid.UUID) -> bool:
        """``landlord_id`` is the owner of the property the invoice's unit belongs to."""

    def can_view_payment(self, payment: Payment, landlord_id: uuid.UUID) -> bool:
        return payment.tenant_id == self.user_id or landlord_id == self.user_id

    def can_view_receipt(self, invoice: Invoice, landlord_id: uuid.UUID) -> bool:
        return self.can_view_invoice(invoice, landlord_id)

    @abstractmethod
    def scope_invoices(self, stmt: Select) -> Select:
        """Restrict a ``select(Invoice)`` to invoices visible to this caller."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.user_id}>"


class LandlordIdentity(Identity):
    role = UserRole.LANDLORD

    def as_landlord(self) -> "LandlordIdentity":
        return self

    def can_view_invoice(self, invoice: Invoice, landlord_id: uuid.UUID) -> bool:
        return landlord_id == self.user_id

    def scope_invoices(self, stmt: Select) -> Select:
        return (
            stmt.join(Unit, Invoice.unit_id == Unit.id)
            .join(Property, Unit.property_id == Property.id)
            .where(Property.landlord_id == self.user_id)
        )

    def scope_payments(self, stmt: Select) -> Select:
        return (
            stmt.join(Invoice, Payment.invoice_id == Invoice.id)
            .join(Unit, Invoice.unit_id == Unit.id)
            .join(Property, Unit.property_id == Property.id)
            .where(Property.landlord_id == self.user_id)
        )


class TenantIdentity(Identity):
    role = UserRole.TENANT

    def as_tenant(self) -> "TenantIdentity":
        return self

    def can_view_invoice(self, invoice: Invoice, landlord_id: uuid.UUID) -> bool:
        return invoice.tenant_id == self.user_id

    def scope_invoices(self, stmt: Select) -> Select:
        return stmt.where(Invoice.tenant_id == self.user_id)

    def scope_receipts(self, stmt: Select) -> Select:
        return stmt.join(Payment, Receipt.payment_id == Payment.id).where(
            Payment.tenant_id == self.user_id
        )


_IDENTITY_BY_ROLE: dict[UserRole, type[Identity]] = {
    UserRole.LANDLORD: LandlordIdentity,
    UserRole.TENANT: TenantIdentity,
}


def identity_for(user: User) -> Identity:
    return _IDENTITY_BY_ROLE[UserRole(user.role)](user)
